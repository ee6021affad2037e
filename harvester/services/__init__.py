"""Pipeline helpers shared by the harvest orchestrator."""

from .playlist import build_playlist, group_counts, parse_playlist, write_playlist
from .stages import RetryPolicy, StageOutcome, StageStatus, retry_stage, run_stage

__all__ = [
    "RetryPolicy",
    "StageOutcome",
    "StageStatus",
    "build_playlist",
    "group_counts",
    "parse_playlist",
    "retry_stage",
    "run_stage",
    "write_playlist",
]
