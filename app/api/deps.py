"""FastAPI dependency injection: sessions, the caller, and pipeline singletons."""
from __future__ import annotations

from collections.abc import Generator
from dataclasses import dataclass
from functools import lru_cache
from uuid import UUID

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from app.core.settings import get_settings
from app.db.session import get_session_factory
from app.storage.object_store import ObjectStore, build_object_store
from app.surge.archive import ArchiveAggregator
from app.surge.assembler import PacketAssembler
from app.surge.campaigns import SurgeService
from app.surge.orchestrator import BatchOrchestrator
from app.surge.progress import EventBroker
from app.surge.rate_limit import SlidingWindowRateLimiter
from app.surge.renderer import HttpReportRenderer


def get_db() -> Generator[Session, None, None]:
    """Yield a SQLAlchemy session; commit on success, rollback on error."""
    db = get_session_factory()()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


# ---------------------------------------------------------------------------
# Caller identity
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Actor:
    user_id: str
    organization_id: UUID

    @property
    def channel(self) -> str:
        return self.user_id


def get_actor(
    x_user_id: str | None = Header(default=None),
    x_organization_id: str | None = Header(default=None),
) -> Actor:
    """Identify the caller from headers set by the authenticating proxy."""
    if not x_user_id or not x_organization_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id or X-Organization-Id header")
    try:
        organization_id = UUID(x_organization_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid X-Organization-Id header")
    return Actor(user_id=x_user_id, organization_id=organization_id)


# ---------------------------------------------------------------------------
# Process-wide collaborators
# ---------------------------------------------------------------------------

@lru_cache(maxsize=1)
def get_object_store() -> ObjectStore:
    return build_object_store(get_settings())


@lru_cache(maxsize=1)
def get_event_broker() -> EventBroker:
    return EventBroker()


@lru_cache(maxsize=1)
def get_archive_aggregator() -> ArchiveAggregator:
    return ArchiveAggregator(get_session_factory(), get_object_store())


@lru_cache(maxsize=1)
def get_orchestrator() -> BatchOrchestrator:
    settings = get_settings()
    assembler = PacketAssembler(
        get_session_factory(),
        get_object_store(),
        HttpReportRenderer(),
        seed_missing=settings.surge_seed_missing_reports,
    )
    return BatchOrchestrator(
        session_factory=get_session_factory(),
        assembler=assembler,
        store=get_object_store(),
        broker=get_event_broker(),
        archive_aggregator=get_archive_aggregator(),
        rate_limiter=SlidingWindowRateLimiter(settings.prepare_rate_limit, settings.prepare_rate_window_s),
    )


def get_surge_service(
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
) -> SurgeService:
    """Return a SurgeService bound to the current DB session."""
    return SurgeService(db, store)
