from __future__ import annotations

from datetime import datetime, timezone
from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.db import models

ModelT = TypeVar("ModelT")


class BaseRepository(Generic[ModelT]):
    model: type[ModelT]

    def __init__(self, db: Session):
        self.db = db

    def create(self, **kwargs) -> ModelT:
        entity = self.model(**kwargs)
        self.db.add(entity)
        self.db.flush()
        return entity

    def get(self, entity_id) -> ModelT | None:
        return self.db.get(self.model, entity_id)

    def list(self, limit: int = 100, offset: int = 0) -> list[ModelT]:
        stmt = select(self.model).offset(offset).limit(limit)
        return self.db.execute(stmt).scalars().all()

    def update(self, entity: ModelT, **kwargs) -> ModelT:
        for key, value in kwargs.items():
            setattr(entity, key, value)
        self.db.flush()
        return entity

    def delete(self, entity: ModelT) -> None:
        self.db.delete(entity)
        self.db.flush()


class OrganizationRepository(BaseRepository[models.Organization]):
    model = models.Organization


class HouseholdRepository(BaseRepository[models.Household]):
    model = models.Household

    def list_for_organization(self, organization_id: UUID) -> list[models.Household]:
        stmt = select(models.Household).where(models.Household.organization_id == organization_id)
        return self.db.execute(stmt).scalars().all()


class ReportRecordRepository(BaseRepository[models.ReportRecord]):
    model = models.ReportRecord

    def for_household(self, household_id: UUID, report_type: str) -> models.ReportRecord | None:
        stmt = select(models.ReportRecord).where(
            models.ReportRecord.household_id == household_id,
            models.ReportRecord.report_type == report_type,
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def existing_types(self, household_id: UUID) -> set[str]:
        stmt = select(models.ReportRecord.report_type).where(models.ReportRecord.household_id == household_id)
        return set(self.db.execute(stmt).scalars().all())


class SurgeRepository(BaseRepository[models.Surge]):
    model = models.Surge

    def list_for_organization(self, organization_id: UUID) -> list[models.Surge]:
        stmt = (
            select(models.Surge)
            .where(models.Surge.organization_id == organization_id)
            .order_by(models.Surge.created_at.desc())
        )
        return self.db.execute(stmt).scalars().all()

    def get_by_name(self, organization_id: UUID, name: str) -> models.Surge | None:
        stmt = select(models.Surge).where(
            models.Surge.organization_id == organization_id,
            models.Surge.name == name,
        )
        return self.db.execute(stmt).scalar_one_or_none()


class SurgeSnapshotRepository(BaseRepository[models.SurgeSnapshot]):
    model = models.SurgeSnapshot

    def for_household(self, surge_id: UUID, household_id: UUID) -> models.SurgeSnapshot | None:
        stmt = select(models.SurgeSnapshot).where(
            models.SurgeSnapshot.surge_id == surge_id,
            models.SurgeSnapshot.household_id == household_id,
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def prepared_household_ids(self, surge_id: UUID) -> set[UUID]:
        stmt = select(models.SurgeSnapshot.household_id).where(models.SurgeSnapshot.surge_id == surge_id)
        return set(self.db.execute(stmt).scalars().all())

    def count_for_surge(self, surge_id: UUID) -> int:
        return len(self.prepared_household_ids(surge_id))

    def upsert(
        self,
        *,
        surge_id: UUID,
        household_id: UUID,
        packet_key: str,
        packet_size: int,
        report_snapshots: list[dict],
        warnings: list[str],
        prepared_at: datetime | None = None,
    ) -> models.SurgeSnapshot:
        """Create or replace the single snapshot for ``(surge_id, household_id)``.

        A concurrent insert for the same pair loses the unique-constraint race;
        the session is rolled back and the row that won is updated instead, so
        callers must not hold other uncommitted changes.
        """
        fields = {
            "packet_key": packet_key,
            "packet_size": packet_size,
            "report_snapshots": report_snapshots,
            "warnings": warnings,
            "prepared_at": prepared_at or datetime.now(timezone.utc),
        }
        existing = self.for_household(surge_id, household_id)
        if existing is not None:
            return self.update(existing, **fields)

        try:
            snapshot = self.create(surge_id=surge_id, household_id=household_id, **fields)
        except IntegrityError:
            self.db.rollback()
            existing = self.for_household(surge_id, household_id)
            if existing is None:
                raise
            return self.update(existing, **fields)
        return snapshot

    def delete_for_surge(self, surge_id: UUID, household_ids: list[UUID] | None = None) -> int:
        stmt = delete(models.SurgeSnapshot).where(models.SurgeSnapshot.surge_id == surge_id)
        if household_ids is not None:
            stmt = stmt.where(models.SurgeSnapshot.household_id.in_(household_ids))
        result = self.db.execute(stmt)
        self.db.flush()
        return result.rowcount or 0
