"""
Resumable run state.

Usage:
    from kader_planung.resume import CheckpointStore, RunConfig
"""

from .checkpoint import (
    Checkpoint,
    CheckpointCorruptError,
    CheckpointError,
    CheckpointNotFoundError,
    CheckpointStore,
    CheckpointWriteError,
    ConfigMismatchError,
    PartialPlayerData,
    PlayerResult,
    Progress,
    RunConfig,
)

__all__ = [
    "Checkpoint",
    "CheckpointCorruptError",
    "CheckpointError",
    "CheckpointNotFoundError",
    "CheckpointStore",
    "CheckpointWriteError",
    "ConfigMismatchError",
    "PartialPlayerData",
    "PlayerResult",
    "Progress",
    "RunConfig",
]
