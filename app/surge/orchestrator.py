"""Accept a batch prepare request and fan household builds out to workers.

``prepare`` runs the admission path synchronously (rate limit, validation,
step accounting, submission) and returns as soon as every household task is
queued.  Completion is observed only through the actor's event channel:
``progress`` ticks while households build, then a single ``allDone`` once
the queue drains.
"""
from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from concurrent.futures import Executor
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from app.core.constants import ACTION_SAVE_DOWNLOAD, VALID_POST_ACTIONS
from app.db.models import Household, Surge
from app.storage.object_store import ObjectStore
from app.surge.archive import ArchiveAggregator
from app.surge.assembler import PacketAssembler
from app.surge.errors import (
    BatchInProgressError,
    EmptySelectionError,
    HouseholdNotFoundError,
    NothingToBuildError,
    SurgeNotFoundError,
)
from app.surge.progress import EventBroker, ProgressTracker
from app.surge.rate_limit import SlidingWindowRateLimiter
from app.surge.work_queue import TaskOutcome, WorkQueue

logger = logging.getLogger(__name__)


@dataclass
class PrepareResult:
    accepted: bool
    total_households: int
    total_steps: int = 0


def _dedupe(ids: Sequence[UUID]) -> list[UUID]:
    seen: set[UUID] = set()
    out: list[UUID] = []
    for hid in ids:
        if hid not in seen:
            seen.add(hid)
            out.append(hid)
    return out


class BatchOrchestrator:
    def __init__(
        self,
        session_factory: sessionmaker,
        assembler: PacketAssembler,
        store: ObjectStore,
        broker: EventBroker,
        archive_aggregator: ArchiveAggregator,
        rate_limiter: SlidingWindowRateLimiter,
        executor: Executor | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.assembler = assembler
        self.store = store
        self.broker = broker
        self.archive_aggregator = archive_aggregator
        self.rate_limiter = rate_limiter
        self._executor = executor
        self._inflight: set[tuple[UUID, str]] = set()
        self._inflight_lock = threading.Lock()

    def is_running(self, surge_id: UUID, actor: str) -> bool:
        with self._inflight_lock:
            return (surge_id, actor) in self._inflight

    def prepare(
        self,
        surge_id: UUID,
        household_ids: Sequence[UUID],
        order: Sequence[UUID] | None,
        post_action: str,
        actor: str,
    ) -> PrepareResult:
        """Validate and enqueue one build per selected household.

        Raises ``RateLimitExceededError`` before touching the database, then
        ``SurgeNotFoundError``, ``EmptySelectionError``,
        ``NothingToBuildError``, ``ValueError`` (unknown post action),
        ``HouseholdNotFoundError`` (unknown or foreign household) or
        ``BatchInProgressError``.  Nothing is queued when any of them fires.

        ``total_households`` counts the submitted households (the order
        filtered to the selection); the ``allDone`` total counts the
        deduplicated selection.
        """
        self.rate_limiter.hit(actor)

        selected = _dedupe(household_ids)
        with self._session_factory() as db:
            surge = db.get(Surge, surge_id)
            if surge is None:
                raise SurgeNotFoundError(surge_id)
            steps_per_household = len(surge.report_types or []) + len(surge.uploads)

            if not selected:
                raise EmptySelectionError()
            if steps_per_household == 0:
                raise NothingToBuildError()
            if post_action not in VALID_POST_ACTIONS:
                raise ValueError(f"Invalid post action: {post_action!r}")

            # Households outside the surge's organization are reported as missing.
            known = set(
                db.scalars(
                    select(Household.id).where(
                        Household.id.in_(selected),
                        Household.organization_id == surge.organization_id,
                    )
                )
            )
            missing = [hid for hid in selected if hid not in known]
            if missing:
                raise HouseholdNotFoundError(missing[0])

        guard = (surge_id, actor)
        with self._inflight_lock:
            if guard in self._inflight:
                raise BatchInProgressError(surge_id)
            self._inflight.add(guard)

        try:
            total_steps = steps_per_household * len(selected)
            selected_set = set(selected)
            targets = [hid for hid in _dedupe(order or selected) if hid in selected_set]

            tracker = ProgressTracker(
                broker=self.broker,
                channel=actor,
                surge_id=str(surge_id),
                total=total_steps,
            )
            tracker.start()

            work = WorkQueue(self._executor)
            for household_id in targets:
                work.submit(self._build_task(surge_id, household_id, tracker), name=str(household_id))
        except Exception:
            self._release(guard)
            raise

        logger.info(
            "Prepare accepted for surge %s by %s: %d household(s), %d step(s), action=%s",
            surge_id,
            actor,
            len(targets),
            total_steps,
            post_action,
        )
        work.on_drain(
            lambda outcomes: self._on_drain(guard, tracker, outcomes, post_action, len(selected))
        )
        return PrepareResult(accepted=True, total_households=len(targets), total_steps=total_steps)

    def _build_task(self, surge_id: UUID, household_id: UUID, tracker: ProgressTracker):
        def task():
            try:
                ref = self.assembler.build(surge_id, household_id, progress=tracker.tick)
            except Exception:
                tracker.record_failure(str(household_id))
                raise
            tracker.record_success(str(household_id))
            return ref

        return task

    def _on_drain(
        self,
        guard: tuple[UUID, str],
        tracker: ProgressTracker,
        outcomes: list[TaskOutcome],
        post_action: str,
        total_households: int,
    ) -> None:
        surge_id = guard[0]
        try:
            tracker.complete()
            archive_ref = ""
            if post_action == ACTION_SAVE_DOWNLOAD and tracker.succeeded:
                archive_ref = self._build_archive(surge_id, [UUID(hid) for hid in tracker.succeeded])
            payload = tracker.finish(post_action, archive_ref, total_households)
            logger.info(
                "Batch for surge %s finished: %d ok, %d failed (%d outcome(s))",
                surge_id,
                payload["successCount"],
                payload["errorCount"],
                len(outcomes),
            )
        finally:
            self._release(guard)

    def _build_archive(self, surge_id: UUID, household_ids: list[UUID]) -> str:
        try:
            return self.archive_aggregator.build_archive(surge_id, household_ids)
        except Exception as exc:
            logger.error("Archive build failed for surge %s: %s: %s", surge_id, type(exc).__name__, exc)
            return ""

    def _release(self, guard: tuple[UUID, str]) -> None:
        with self._inflight_lock:
            self._inflight.discard(guard)
