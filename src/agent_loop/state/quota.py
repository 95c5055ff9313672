"""Quota tracker persisted by the rate limiter."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from agent_loop.state.store import read_state_file, require_int, write_state_file

CALL_COUNT = "CALL_COUNT"
HOUR_START = "HOUR_START"


@dataclass(frozen=True, slots=True)
class QuotaState:
    """Calls made inside the window that starts at ``window_start``."""

    call_count: int
    window_start: int


class QuotaLedger:
    """Reads and writes ``QuotaState`` as a whole record."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> QuotaState | None:
        values = read_state_file(self.path)
        if values is None:
            return None
        return QuotaState(
            call_count=require_int(values, CALL_COUNT, self.path),
            window_start=require_int(values, HOUR_START, self.path),
        )

    def save(self, state: QuotaState) -> None:
        write_state_file(
            self.path,
            {
                CALL_COUNT: str(state.call_count),
                HOUR_START: str(state.window_start),
            },
        )
