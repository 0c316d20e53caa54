from __future__ import annotations

from datetime import date, datetime
from uuid import UUID, uuid4

from sqlalchemy import Date, DateTime, Float, ForeignKey, Integer, JSON, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base


def _upload_token() -> str:
    return uuid4().hex


class Organization(Base):
    __tablename__ = "organizations"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    logo_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    households: Mapped[list[Household]] = relationship(back_populates="organization")
    surges: Mapped[list[Surge]] = relationship(back_populates="organization")


class Household(Base):
    __tablename__ = "households"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    organization_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True, index=True
    )
    name: Mapped[str | None] = mapped_column(String(256), nullable=True)
    lead_advisor_ids: Mapped[list | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    organization: Mapped[Organization | None] = relationship(back_populates="households")
    clients: Mapped[list[Client]] = relationship(
        back_populates="household", order_by="Client.position", cascade="all, delete-orphan"
    )
    accounts: Mapped[list[Account]] = relationship(back_populates="household", cascade="all, delete-orphan")
    report_records: Mapped[list[ReportRecord]] = relationship(
        back_populates="household", cascade="all, delete-orphan"
    )


class Client(Base):
    __tablename__ = "clients"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    household_id: Mapped[UUID] = mapped_column(ForeignKey("households.id", ondelete="CASCADE"), nullable=False)
    first_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    household: Mapped[Household] = relationship(back_populates="clients")


class Account(Base):
    __tablename__ = "accounts"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    household_id: Mapped[UUID] = mapped_column(ForeignKey("households.id", ondelete="CASCADE"), nullable=False)
    account_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    account_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    systematic_withdraw_amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    systematic_withdraw_frequency: Mapped[str | None] = mapped_column(String(32), nullable=True)
    cash: Mapped[float | None] = mapped_column(Float, nullable=True)
    income: Mapped[float | None] = mapped_column(Float, nullable=True)
    annuities: Mapped[float | None] = mapped_column(Float, nullable=True)
    growth: Mapped[float | None] = mapped_column(Float, nullable=True)

    household: Mapped[Household] = relationship(back_populates="accounts")


class ReportRecord(Base):
    __tablename__ = "report_records"
    __table_args__ = (UniqueConstraint("household_id", "report_type", name="uq_report_records_household_type"),)

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    household_id: Mapped[UUID] = mapped_column(ForeignKey("households.id", ondelete="CASCADE"), nullable=False, index=True)
    report_type: Mapped[str] = mapped_column(String(32), nullable=False)
    current_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    warnings: Mapped[list | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    household: Mapped[Household] = relationship(back_populates="report_records")


class Surge(Base):
    __tablename__ = "surges"
    __table_args__ = (UniqueConstraint("organization_id", "name", name="uq_surges_organization_name"),)

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    organization_id: Mapped[UUID] = mapped_column(ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(60), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    report_types: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    order: Mapped[list] = mapped_column("module_order", JSON, nullable=False, default=list)
    created_by: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    organization: Mapped[Organization] = relationship(back_populates="surges")
    uploads: Mapped[list[SurgeUpload]] = relationship(
        back_populates="surge", order_by="SurgeUpload.position", cascade="all, delete-orphan"
    )
    snapshots: Mapped[list[SurgeSnapshot]] = relationship(
        back_populates="surge", cascade="all, delete-orphan", passive_deletes=True
    )


class SurgeUpload(Base):
    __tablename__ = "surge_uploads"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_upload_token)
    surge_id: Mapped[UUID] = mapped_column(ForeignKey("surges.id", ondelete="CASCADE"), nullable=False, index=True)
    file_name: Mapped[str] = mapped_column(String(512), nullable=False)
    storage_key: Mapped[str] = mapped_column(String(1024), nullable=False)
    page_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    surge: Mapped[Surge] = relationship(back_populates="uploads")


class SurgeSnapshot(Base):
    __tablename__ = "surge_snapshots"
    __table_args__ = (UniqueConstraint("surge_id", "household_id", name="uq_surge_snapshots_surge_household"),)

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    surge_id: Mapped[UUID] = mapped_column(ForeignKey("surges.id", ondelete="CASCADE"), nullable=False)
    # Weak reference: households are owned elsewhere.
    household_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    packet_key: Mapped[str] = mapped_column(String(1024), nullable=False)
    packet_size: Mapped[int] = mapped_column(Integer, nullable=False)
    prepared_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    report_snapshots: Mapped[list | None] = mapped_column(JSON, nullable=True)
    warnings: Mapped[list | None] = mapped_column(JSON, nullable=True)

    surge: Mapped[Surge] = relationship(back_populates="snapshots")
