"""
Checkpoint store for resumable processing runs.

A checkpoint is a JSON snapshot of one run:

- ``config``: the run parameters, checked on resume
- ``progress``: club counters and the current phase label
- ``processed_items``: the ledger, one entry per (type, id)
- ``partial_data``: per-player intermediate results not yet completed
- ``results``: per-player results, used to rebuild records of skipped work

Writes are atomic: the snapshot is written to a temporary file in the same
directory, fsync'ed and then renamed over the destination, so the file on
disk is always either the previous or the new valid snapshot.

Usage:
    store = CheckpointStore(Path("kader-planung-checkpoint-all.json"))
    checkpoint = store.load() if store.exists() else store.create(run_config)
    store.mark_processed(checkpoint, EntityType.club, "C0327", ItemStatus.completed)
    store.save(checkpoint)
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, field_serializer, field_validator

from ..core.models import HistoricalAnalysis, Player, RatingHistory
from ..core.types import EntityType, ItemStatus

logger = logging.getLogger(__name__)

LedgerKey = tuple[str, str]


# =============================================================================
# Errors
# =============================================================================


class CheckpointError(Exception):
    """Base exception for checkpoint problems."""


class CheckpointNotFoundError(CheckpointError):
    """The checkpoint file does not exist."""


class CheckpointCorruptError(CheckpointError):
    """The checkpoint file exists but cannot be parsed."""


class CheckpointWriteError(CheckpointError):
    """The checkpoint could not be written to disk."""


class ConfigMismatchError(CheckpointError):
    """The checkpoint belongs to a run with a different scope."""


# =============================================================================
# Models
# =============================================================================


class RunConfig(BaseModel):
    """Run parameters persisted with the checkpoint."""

    club_prefix: str = ""
    output_format: str = "csv"
    concurrency: int = 1


class Progress(BaseModel):
    total_clubs: int = 0
    processed_clubs: int = 0
    current_phase: str = "initialization"


class PartialPlayerData(BaseModel):
    """Intermediate state of a player that has not reached ``completed``."""

    club_id: str
    club_name: str = ""
    player: Player
    history: Optional[RatingHistory] = None
    analysis: Optional[HistoricalAnalysis] = None


class PlayerResult(BaseModel):
    """Final per-player outcome; ``analysis`` is None for failed players."""

    club_id: str
    club_name: str = ""
    player: Player
    analysis: Optional[HistoricalAnalysis] = None


class Checkpoint(BaseModel):
    """Recoverable state of one run."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    config: RunConfig = Field(default_factory=RunConfig)
    progress: Progress = Field(default_factory=Progress)
    processed_items: dict[LedgerKey, ItemStatus] = Field(default_factory=dict)
    partial_data: dict[str, PartialPlayerData] = Field(default_factory=dict)
    results: dict[str, PlayerResult] = Field(default_factory=dict)

    @field_validator("processed_items", mode="before")
    @classmethod
    def _ledger_from_list(cls, value: Any) -> Any:
        # On disk the ledger is a list of {type, id, status}; later entries win
        if isinstance(value, list):
            ledger: dict[LedgerKey, str] = {}
            for item in value:
                ledger[(item["type"], item["id"])] = item["status"]
            return ledger
        return value

    @field_serializer("processed_items")
    def _ledger_to_list(self, ledger: dict[LedgerKey, ItemStatus]) -> list[dict[str, str]]:
        return [
            {"type": entity_type, "id": entity_id, "status": ItemStatus(status).value}
            for (entity_type, entity_id), status in ledger.items()
        ]


def _key(entity_type: EntityType | str, entity_id: str) -> LedgerKey:
    return (EntityType(entity_type).value, entity_id)


# =============================================================================
# Store
# =============================================================================


class CheckpointStore:
    """
    Loads, mutates and persists checkpoints.

    Every mutation goes through an internal lock, so workers can share one
    store and one checkpoint without their own locking. Lock hold time is a
    single dictionary update; no I/O happens while mutating.
    """

    def __init__(self, path: Path | str, logger: Optional[logging.Logger] = None):
        self.path = Path(path)
        self.logger = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._save_lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def create(self, config: RunConfig) -> Checkpoint:
        """Start a fresh checkpoint for a new run."""
        return Checkpoint(config=config.model_copy())

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Checkpoint:
        """
        Read the checkpoint from disk.

        Raises:
            CheckpointNotFoundError: If the file does not exist
            CheckpointCorruptError: If the file is not a valid checkpoint
        """
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError as e:
            raise CheckpointNotFoundError(f"Checkpoint not found: {self.path}") from e
        except (OSError, ValueError) as e:
            raise CheckpointCorruptError(f"Cannot read checkpoint {self.path}: {e}") from e

        try:
            checkpoint = Checkpoint.model_validate(data)
        except (ValidationError, KeyError, TypeError) as e:
            raise CheckpointCorruptError(f"Invalid checkpoint {self.path}: {e}") from e

        self.logger.info(
            "Loaded checkpoint from %s (%d/%d clubs, phase %s)",
            self.path,
            checkpoint.progress.processed_clubs,
            checkpoint.progress.total_clubs,
            checkpoint.progress.current_phase,
        )
        return checkpoint

    def save(self, checkpoint: Checkpoint) -> None:
        """
        Persist the checkpoint atomically.

        Raises:
            CheckpointWriteError: If the snapshot could not be written. The
                previous file (if any) is left untouched.
        """
        with self._lock:
            checkpoint.timestamp = datetime.now(timezone.utc)
            payload = json.dumps(checkpoint.model_dump(mode="json"), indent=2)

        with self._save_lock:
            self._write_atomic(payload)

        self.logger.debug("Checkpoint saved to %s", self.path)

    def _write_atomic(self, payload: str) -> None:
        parent = self.path.parent
        tmp_path: Optional[str] = None
        try:
            parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=parent, prefix=".checkpoint_", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError as e:
            if tmp_path is not None:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass
            raise CheckpointWriteError(f"Failed to write checkpoint {self.path}: {e}") from e

    def cleanup(self) -> bool:
        """
        Delete the checkpoint file after a successful run.

        Returns:
            True if no checkpoint file remains, False if deletion failed
        """
        try:
            self.path.unlink()
            self.logger.info("Removed checkpoint %s", self.path)
        except FileNotFoundError:
            pass
        except OSError as e:
            self.logger.warning("Could not remove checkpoint %s: %s", self.path, e)
            return False
        return True

    def validate_config(self, checkpoint: Checkpoint, current: RunConfig) -> None:
        """
        Check that a loaded checkpoint belongs to the current invocation.

        Raises:
            ConfigMismatchError: If club prefix or output format differ
        """
        saved = checkpoint.config
        if saved.club_prefix != current.club_prefix:
            raise ConfigMismatchError(
                f"Club prefix mismatch: checkpoint has '{saved.club_prefix}', "
                f"current run has '{current.club_prefix}'"
            )
        if saved.output_format != current.output_format:
            raise ConfigMismatchError(
                f"Output format mismatch: checkpoint has '{saved.output_format}', "
                f"current run has '{current.output_format}'"
            )
        if saved.concurrency != current.concurrency:
            self.logger.warning(
                "Concurrency changed from %d to %d since the checkpoint was written",
                saved.concurrency,
                current.concurrency,
            )

    # -------------------------------------------------------------------------
    # Ledger
    # -------------------------------------------------------------------------

    def mark_processed(
        self,
        checkpoint: Checkpoint,
        entity_type: EntityType | str,
        entity_id: str,
        status: ItemStatus | str,
    ) -> None:
        """Record the status of an entity, replacing any earlier entry."""
        key = _key(entity_type, entity_id)
        with self._lock:
            checkpoint.processed_items.pop(key, None)
            checkpoint.processed_items[key] = ItemStatus(status)

    def get_status(
        self,
        checkpoint: Checkpoint,
        entity_type: EntityType | str,
        entity_id: str,
    ) -> Optional[ItemStatus]:
        with self._lock:
            return checkpoint.processed_items.get(_key(entity_type, entity_id))

    def is_processed(
        self,
        checkpoint: Checkpoint,
        entity_type: EntityType | str,
        entity_id: str,
    ) -> bool:
        """True only for entities whose ledger entry is ``completed``."""
        return self.get_status(checkpoint, entity_type, entity_id) is ItemStatus.completed

    def processed_ids(
        self,
        checkpoint: Checkpoint,
        entity_type: EntityType | str,
        status: ItemStatus = ItemStatus.completed,
    ) -> set[str]:
        wanted = EntityType(entity_type).value
        with self._lock:
            return {
                entity_id
                for (kind, entity_id), item_status in checkpoint.processed_items.items()
                if kind == wanted and item_status is status
            }

    # -------------------------------------------------------------------------
    # Partial cache
    # -------------------------------------------------------------------------

    def upsert_partial(self, checkpoint: Checkpoint, player_id: str, data: PartialPlayerData) -> None:
        with self._lock:
            checkpoint.partial_data[player_id] = data.model_copy(deep=True)

    def get_partial(self, checkpoint: Checkpoint, player_id: str) -> Optional[PartialPlayerData]:
        with self._lock:
            data = checkpoint.partial_data.get(player_id)
            return data.model_copy(deep=True) if data is not None else None

    def remove_partial(self, checkpoint: Checkpoint, player_id: str) -> None:
        with self._lock:
            checkpoint.partial_data.pop(player_id, None)

    # -------------------------------------------------------------------------
    # Results
    # -------------------------------------------------------------------------

    def complete_player(self, checkpoint: Checkpoint, result: PlayerResult) -> None:
        """Store a player's result, mark it completed and drop its partial entry."""
        player_id = result.player.id
        key = _key(EntityType.player, player_id)
        with self._lock:
            checkpoint.results[player_id] = result.model_copy(deep=True)
            checkpoint.processed_items.pop(key, None)
            checkpoint.processed_items[key] = ItemStatus.completed
            checkpoint.partial_data.pop(player_id, None)

    def fail_player(self, checkpoint: Checkpoint, result: PlayerResult) -> None:
        """Store a failed player's snapshot and mark it failed; partial data is kept."""
        player_id = result.player.id
        key = _key(EntityType.player, player_id)
        with self._lock:
            checkpoint.results[player_id] = result.model_copy(deep=True, update={"analysis": None})
            checkpoint.processed_items.pop(key, None)
            checkpoint.processed_items[key] = ItemStatus.failed

    def get_result(self, checkpoint: Checkpoint, player_id: str) -> Optional[PlayerResult]:
        with self._lock:
            result = checkpoint.results.get(player_id)
            return result.model_copy(deep=True) if result is not None else None

    def results_by_club(self, checkpoint: Checkpoint) -> dict[str, list[PlayerResult]]:
        """Group stored player results by club in a single pass."""
        grouped: dict[str, list[PlayerResult]] = defaultdict(list)
        with self._lock:
            for result in checkpoint.results.values():
                grouped[result.club_id].append(result.model_copy(deep=True))
        return dict(grouped)

    # -------------------------------------------------------------------------
    # Progress
    # -------------------------------------------------------------------------

    def update_progress(
        self,
        checkpoint: Checkpoint,
        *,
        total_clubs: Optional[int] = None,
        processed_clubs: Optional[int] = None,
        phase: Optional[str] = None,
    ) -> None:
        with self._lock:
            if total_clubs is not None:
                checkpoint.progress.total_clubs = total_clubs
            if processed_clubs is not None:
                checkpoint.progress.processed_clubs = processed_clubs
            if phase is not None:
                checkpoint.progress.current_phase = phase

    def summary(self, checkpoint: Checkpoint) -> dict[str, Any]:
        """Counts used by the ``checkpoint-status`` command."""
        with self._lock:
            counts: dict[str, dict[str, int]] = {}
            for (kind, _), status in checkpoint.processed_items.items():
                per_type = counts.setdefault(kind, {s.value: 0 for s in ItemStatus})
                per_type[status.value] += 1
            return {
                "timestamp": checkpoint.timestamp.isoformat(),
                "club_prefix": checkpoint.config.club_prefix,
                "output_format": checkpoint.config.output_format,
                "concurrency": checkpoint.config.concurrency,
                "phase": checkpoint.progress.current_phase,
                "total_clubs": checkpoint.progress.total_clubs,
                "processed_clubs": checkpoint.progress.processed_clubs,
                "ledger": counts,
                "partial_entries": len(checkpoint.partial_data),
                "results": len(checkpoint.results),
            }
