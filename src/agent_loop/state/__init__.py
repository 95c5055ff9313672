"""Persisted state for the loop guards."""

from agent_loop.state.progress import ProgressLedger, ProgressState
from agent_loop.state.quota import QuotaLedger, QuotaState
from agent_loop.state.store import StateFileError

__all__ = [
    "ProgressLedger",
    "ProgressState",
    "QuotaLedger",
    "QuotaState",
    "StateFileError",
]
