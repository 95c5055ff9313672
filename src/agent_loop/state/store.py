"""Key=value state files shared by the circuit breaker and the rate limiter.

Each file is read and written as a whole record. Writes go to a temporary
file beside the target which then replaces it, so a reader never observes a
half-written record. Concurrent writers from separate processes are not
supported: the last writer wins.
"""

from __future__ import annotations

import logging
import os
from contextlib import suppress
from pathlib import Path

logger = logging.getLogger(__name__)


class StateFileError(RuntimeError):
    """State file exists but cannot be read, parsed, or written."""

    def __init__(self, message: str, *, path: Path) -> None:
        super().__init__(message)
        self.path = path


def read_state_file(path: Path) -> dict[str, str] | None:
    """Return the key=value pairs of ``path``, or ``None`` if it does not exist yet."""

    try:
        text = path.read_text("utf-8")
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError) as error:
        raise StateFileError(f"Cannot read state file {path}: {error}", path=path) from error

    values: dict[str, str] = {}
    for line_no, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.strip()
        if not line:
            continue
        if "=" not in line:
            raise StateFileError(
                f"Malformed state file {path}, line {line_no}: {raw_line!r}",
                path=path,
            )
        key, value = line.split("=", 1)
        values[key.strip()] = value.strip()
    return values


def write_state_file(path: Path, values: dict[str, str]) -> None:
    """Atomically replace ``path`` with the given key=value pairs."""

    body = "".join(f"{key}={value}\n" for key, value in values.items())
    temp_path = path.with_name(f"{path.name}.{os.getpid()}.tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_path.write_text(body, "utf-8")
        temp_path.replace(path)
    except OSError as error:
        with suppress(OSError):
            temp_path.unlink(missing_ok=True)
        raise StateFileError(f"Cannot write state file {path}: {error}", path=path) from error
    logger.debug("Saved state file %s", path)


def require_int(values: dict[str, str], key: str, path: Path) -> int:
    """Parse a non-negative integer field; a missing or empty field reads as 0."""

    raw = values.get(key, "")
    if not raw:
        return 0
    if not (raw.isascii() and raw.isdigit()):
        raise StateFileError(
            f"Invalid {key} in state file {path}: {raw!r} (expected a non-negative integer)",
            path=path,
        )
    return int(raw)
