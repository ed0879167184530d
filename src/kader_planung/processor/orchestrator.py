"""
Batch orchestrator.

Walks clubs and their players with a fixed pool of async workers:

1. Discovery: fetch the full club list (fatal on failure)
2. Clubs already completed in the checkpoint are skipped; their records are
   rebuilt from the stored per-player results
3. Outstanding clubs flow through a bounded work queue to ``concurrency``
   workers; each worker handles one club's players sequentially and puts the
   outcome on a bounded result queue
4. A single collector folds outcomes into the ledger and the record list and
   saves the checkpoint every ``checkpoint_interval`` clubs
5. Once every worker has returned, percentiles are computed over the
   complete population of successfully processed players and back-filled,
   then list rankings are assigned

Per-player and per-club failures never abort the run.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from ..core.http import NotFoundError
from ..core.models import Club, HistoricalAnalysis, KaderPlanungRecord, Player, RatingHistory
from ..core.types import EntityType, ItemStatus
from ..providers.base import ClubDataSource
from ..resume.checkpoint import (
    Checkpoint,
    CheckpointError,
    CheckpointStore,
    PartialPlayerData,
    PlayerResult,
)
from ..statistics.analyzer import SomatogrammData, StatisticalAnalyzer
from .history import analyze_history
from .records import apply_percentiles, apply_rankings, create_record

logger = logging.getLogger(__name__)


class ProcessingError(Exception):
    """Fatal error: the run cannot proceed."""


@dataclass
class ProcessorConfig:
    """Plain configuration handed to the orchestrator."""

    club_prefix: str = ""
    concurrency: int = 1
    min_sample_size: int = 100
    checkpoint_interval: int = 10
    reference_date: Optional[datetime] = None

    def now(self) -> datetime:
        if self.reference_date is None:
            return datetime.now(timezone.utc)
        if self.reference_date.tzinfo is None:
            return self.reference_date.replace(tzinfo=timezone.utc)
        return self.reference_date


@dataclass
class ProcessingResult:
    """Summary and output of one run."""

    records: list[KaderPlanungRecord] = field(default_factory=list)
    statistics: dict[str, SomatogrammData] = field(default_factory=dict)
    total_clubs: int = 0
    processed_clubs: int = 0
    failed_clubs: int = 0
    skipped_clubs: int = 0
    total_players: int = 0
    failed_players: int = 0
    excluded_groups: int = 0
    cancelled: bool = False
    duration: float = 0.0

    @property
    def succeeded_players(self) -> int:
        return self.total_players - self.failed_players

    @property
    def all_failed(self) -> bool:
        """True when there was work at either level and no player succeeded."""
        return (self.total_players + self.failed_clubs) > 0 and self.succeeded_players == 0

    @property
    def fully_successful(self) -> bool:
        """No club is left for a resumed run to retry."""
        return not self.cancelled and self.failed_clubs == 0 and not self.all_failed

    def __str__(self) -> str:
        return (
            f"Clubs: {self.processed_clubs}/{self.total_clubs} processed "
            f"({self.failed_clubs} failed, {self.skipped_clubs} from checkpoint), "
            f"players: {self.total_players} ({self.failed_players} failed), "
            f"groups excluded: {self.excluded_groups}, "
            f"duration: {self.duration:.1f}s"
        )


@dataclass
class ClubOutcome:
    """What a worker hands back to the collector for one club."""

    club: Club
    results: list[PlayerResult] = field(default_factory=list)
    completed: set[str] = field(default_factory=set)
    error: Optional[Exception] = None


class ClubProcessor:
    """
    Resumable concurrent processor for the club → player hierarchy.

    The checkpoint is the only shared mutable state; every mutation goes
    through the CheckpointStore. Records are accumulated by the collector
    task alone.
    """

    def __init__(
        self,
        source: ClubDataSource,
        store: CheckpointStore,
        config: ProcessorConfig,
        logger: Optional[logging.Logger] = None,
        analyzer: Optional[StatisticalAnalyzer] = None,
    ):
        self.source = source
        self.store = store
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self.analyzer = analyzer or StatisticalAnalyzer(
            min_sample_size=config.min_sample_size,
            reference_year=config.now().year,
            logger=self.logger,
        )

    # =========================================================================
    # Main entry point
    # =========================================================================

    async def run(
        self,
        checkpoint: Checkpoint,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ProcessingResult:
        """
        Process every club matching the configured prefix.

        Args:
            checkpoint: Fresh or loaded checkpoint; mutated in place
            cancel_event: When set, workers stop after their current club

        Returns:
            ProcessingResult with records sorted by (club_id, player_id)

        Raises:
            ProcessingError: If the club list cannot be fetched
        """
        start = time.monotonic()
        cancel_event = cancel_event or asyncio.Event()
        now = self.config.now()
        result = ProcessingResult()

        # Phase 1: discovery
        self.store.update_progress(checkpoint, phase="discovery")
        try:
            clubs = await self.source.list_clubs(self.config.club_prefix)
        except Exception as e:
            self.logger.error("Failed to fetch club list: %s", e)
            raise ProcessingError(f"Failed to fetch club list: {e}") from e

        result.total_clubs = len(clubs)
        self.logger.info(
            "Discovered %d clubs for prefix '%s'", len(clubs), self.config.club_prefix or "all"
        )

        records: list[KaderPlanungRecord] = []
        population: list[Player] = []
        outstanding: list[Club] = []
        stored = self.store.results_by_club(checkpoint)

        for club in clubs:
            if self.store.is_processed(checkpoint, EntityType.club, club.id):
                self._fold_results(
                    checkpoint,
                    club,
                    stored.get(club.id, []),
                    None,
                    result,
                    records,
                    population,
                )
                result.processed_clubs += 1
                result.skipped_clubs += 1
            else:
                outstanding.append(club)

        if result.skipped_clubs:
            self.logger.info(
                "Resuming: %d clubs already completed, %d outstanding",
                result.skipped_clubs,
                len(outstanding),
            )

        self.store.update_progress(
            checkpoint,
            total_clubs=len(clubs),
            processed_clubs=result.processed_clubs,
            phase="processing",
        )

        # Phase 2: concurrent processing
        await self._process_outstanding(
            checkpoint, outstanding, now, cancel_event, result, records, population
        )

        if cancel_event.is_set():
            result.cancelled = True
            self.logger.warning(
                "Run cancelled after %d/%d clubs", result.processed_clubs, result.total_clubs
            )
            await self._save(checkpoint)
            result.records = sorted(records, key=_record_order)
            result.duration = time.monotonic() - start
            return result

        # Phase 3: statistics over the complete population
        self.store.update_progress(checkpoint, phase="statistics")
        statistics = self.analyzer.compute(population)
        result.statistics = self.analyzer.build_report(statistics)
        result.excluded_groups = len(statistics.excluded_groups)

        # Phase 4: percentile back-fill and ranking
        records = apply_percentiles(records, statistics.player_percentiles)
        records = apply_rankings(records)
        result.records = sorted(records, key=_record_order)

        self.store.update_progress(checkpoint, phase="completed")
        await self._save(checkpoint)

        result.duration = time.monotonic() - start
        self.logger.info("Processing complete. %s", result)
        return result

    # =========================================================================
    # Worker pool
    # =========================================================================

    async def _process_outstanding(
        self,
        checkpoint: Checkpoint,
        clubs: list[Club],
        now: datetime,
        cancel_event: asyncio.Event,
        result: ProcessingResult,
        records: list[KaderPlanungRecord],
        population: list[Player],
    ) -> None:
        if not clubs:
            return

        concurrency = max(1, self.config.concurrency)
        interval = max(1, self.config.checkpoint_interval)
        work_queue: asyncio.Queue[Optional[Club]] = asyncio.Queue(maxsize=concurrency * 2)
        result_queue: asyncio.Queue[Optional[ClubOutcome]] = asyncio.Queue(maxsize=concurrency * 2)

        async def produce() -> None:
            for club in clubs:
                if cancel_event.is_set():
                    break
                await work_queue.put(club)
            for _ in range(concurrency):
                await work_queue.put(None)

        async def work() -> None:
            while True:
                club = await work_queue.get()
                if club is None:
                    return
                if cancel_event.is_set():
                    continue
                outcome = await self._process_club(checkpoint, club, now)
                await result_queue.put(outcome)

        async def collect() -> None:
            since_save = 0
            while True:
                outcome = await result_queue.get()
                if outcome is None:
                    return
                self._fold_outcome(checkpoint, outcome, result, records, population)
                since_save += 1
                if since_save >= interval:
                    await self._save(checkpoint)
                    since_save = 0

        producer = asyncio.create_task(produce())
        collector = asyncio.create_task(collect())
        workers = [asyncio.create_task(work()) for _ in range(concurrency)]

        try:
            # Barrier: statistics must not start before every worker returned
            await asyncio.gather(*workers)
            await producer
            await result_queue.put(None)
            await collector
        finally:
            for task in (producer, collector, *workers):
                if not task.done():
                    task.cancel()

    async def _process_club(self, checkpoint: Checkpoint, club: Club, now: datetime) -> ClubOutcome:
        outcome = ClubOutcome(club=club)

        try:
            players = await self.source.list_club_players(club.id)
        except Exception as e:
            self.logger.warning("Failed to fetch players for club %s: %s", club.id, e)
            outcome.error = e
            return outcome

        self.logger.debug("Processing %d players for club %s", len(players), club.id)

        for player in players:
            if self.store.is_processed(checkpoint, EntityType.player, player.id):
                stored = self.store.get_result(checkpoint, player.id)
                if stored is not None:
                    outcome.results.append(stored)
                    outcome.completed.add(player.id)
                    continue

            try:
                analysis = await self._analyze_player(checkpoint, club, player, now)
            except Exception as e:
                self.logger.warning("Failed to process player %s: %s", player.id, e)
                failed = PlayerResult(club_id=club.id, club_name=club.name, player=player)
                self.store.fail_player(checkpoint, failed)
                outcome.results.append(failed)
                continue

            player_result = PlayerResult(
                club_id=club.id, club_name=club.name, player=player, analysis=analysis
            )
            self.store.complete_player(checkpoint, player_result)
            outcome.results.append(player_result)
            outcome.completed.add(player.id)

        return outcome

    async def _analyze_player(
        self,
        checkpoint: Checkpoint,
        club: Club,
        player: Player,
        now: datetime,
    ) -> HistoricalAnalysis:
        """Fetch and analyze one player, reusing cached partial data."""
        partial = self.store.get_partial(checkpoint, player.id)
        if partial is not None and partial.analysis is not None:
            self.logger.debug("Using cached analysis for player %s", player.id)
            return partial.analysis

        if partial is None:
            partial = PartialPlayerData(club_id=club.id, club_name=club.name, player=player)

        if partial.history is None:
            try:
                history = await self.source.fetch_rating_history(player.id)
            except NotFoundError:
                history = RatingHistory(player_id=player.id)
            partial.history = history
            self.store.upsert_partial(checkpoint, player.id, partial)

        analysis = analyze_history(partial.history, now)
        partial.analysis = analysis
        self.store.upsert_partial(checkpoint, player.id, partial)
        return analysis

    # =========================================================================
    # Collector helpers
    # =========================================================================

    def _fold_outcome(
        self,
        checkpoint: Checkpoint,
        outcome: ClubOutcome,
        result: ProcessingResult,
        records: list[KaderPlanungRecord],
        population: list[Player],
    ) -> None:
        club = outcome.club
        if outcome.error is not None:
            self.store.mark_processed(checkpoint, EntityType.club, club.id, ItemStatus.failed)
            result.failed_clubs += 1
        else:
            self._fold_results(
                checkpoint, club, outcome.results, outcome.completed, result, records, population
            )
            self.store.mark_processed(checkpoint, EntityType.club, club.id, ItemStatus.completed)
            result.processed_clubs += 1

        self.store.update_progress(
            checkpoint, processed_clubs=result.processed_clubs + result.failed_clubs
        )

    def _fold_results(
        self,
        checkpoint: Checkpoint,
        club: Club,
        player_results: list[PlayerResult],
        completed: Optional[set[str]],
        result: ProcessingResult,
        records: list[KaderPlanungRecord],
        population: list[Player],
    ) -> None:
        if completed is None:
            completed = {
                r.player.id
                for r in player_results
                if self.store.is_processed(checkpoint, EntityType.player, r.player.id)
            }

        for player_result in player_results:
            records.append(create_record(club, player_result.player, player_result.analysis))
            result.total_players += 1
            if player_result.player.id in completed:
                population.append(player_result.player)
            else:
                result.failed_players += 1

    async def _save(self, checkpoint: Checkpoint) -> None:
        """Best-effort durable save; failures are logged, never raised."""
        try:
            await asyncio.to_thread(self.store.save, checkpoint)
        except CheckpointError as e:
            self.logger.warning("Failed to save checkpoint: %s", e)


def _record_order(record: KaderPlanungRecord) -> tuple[str, str]:
    return (record.club_id, record.player_id)
