"""Progress ledger persisted by the circuit breaker."""

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path

from agent_loop.prd import format_completion_vector, parse_completion_vector
from agent_loop.state.store import StateFileError, read_state_file, require_int, write_state_file

NO_PROGRESS_COUNT = "NO_PROGRESS_COUNT"
SAME_ERROR_COUNT = "SAME_ERROR_COUNT"
LAST_ERROR_HASH = "LAST_ERROR_HASH"
LAST_PASSES_STATE = "LAST_PASSES_STATE"


@dataclass(frozen=True, slots=True)
class ProgressState:
    """Counters and last observations of the stuck-loop detector."""

    no_progress_count: int = 0
    same_error_count: int = 0
    last_error_hash: str | None = None
    last_completion_vector: tuple[bool, ...] | None = None

    def with_no_progress(self) -> ProgressState:
        return replace(self, no_progress_count=self.no_progress_count + 1)

    def with_progress(self) -> ProgressState:
        return replace(self, no_progress_count=0)

    def with_error(self, error_hash: str) -> ProgressState:
        if error_hash == self.last_error_hash:
            return replace(self, same_error_count=self.same_error_count + 1)
        return replace(self, same_error_count=1, last_error_hash=error_hash)

    def with_completion_vector(self, vector: tuple[bool, ...] | list[bool]) -> ProgressState:
        return replace(self, last_completion_vector=tuple(vector))


class ProgressLedger:
    """Reads and writes ``ProgressState`` as a whole record."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> ProgressState | None:
        values = read_state_file(self.path)
        if values is None:
            return None
        return ProgressState(
            no_progress_count=require_int(values, NO_PROGRESS_COUNT, self.path),
            same_error_count=require_int(values, SAME_ERROR_COUNT, self.path),
            last_error_hash=values.get(LAST_ERROR_HASH) or None,
            last_completion_vector=_parse_passes(values.get(LAST_PASSES_STATE, ""), self.path),
        )

    def save(self, state: ProgressState) -> None:
        write_state_file(
            self.path,
            {
                NO_PROGRESS_COUNT: str(state.no_progress_count),
                SAME_ERROR_COUNT: str(state.same_error_count),
                LAST_ERROR_HASH: state.last_error_hash or "",
                LAST_PASSES_STATE: format_completion_vector(state.last_completion_vector or ()),
            },
        )

    def reset(self) -> ProgressState:
        state = ProgressState()
        self.save(state)
        return state


def _parse_passes(raw: str, path: Path) -> tuple[bool, ...] | None:
    if not raw:
        return None
    try:
        return parse_completion_vector(raw)
    except ValueError as error:
        raise StateFileError(
            f"Invalid {LAST_PASSES_STATE} in state file {path}: {raw!r}",
            path=path,
        ) from error
