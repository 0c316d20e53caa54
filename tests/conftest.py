import os
from collections.abc import Iterable
from datetime import date

import fitz
import pytest
from cryptography.fernet import Fernet
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from app.db.base import Base
from app.db.models import Account, Client, Household, Organization, ReportRecord, Surge, SurgeUpload
from app.storage.keys import build_upload_key
from app.storage.object_store import LocalObjectStore, StorageError
from app.surge.errors import RenderError


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch) -> TestClient:
    monkeypatch.setenv("DATABASE_URL", "sqlite+pysqlite:///:memory:")

    from app.core.settings import get_settings

    get_settings.cache_clear()
    monkeypatch.setattr("app.db.session._engine", None)
    monkeypatch.setattr("app.db.session._session_factory", None)

    from app.main import app

    with TestClient(app) as test_client:
        yield test_client

    get_settings.cache_clear()
    os.environ.pop("DATABASE_URL", None)


# ---------------------------------------------------------------------------
# PDFs
# ---------------------------------------------------------------------------


def make_pdf(label: str = "page", pages: int = 1) -> bytes:
    """Return a small real PDF whose pages read ``<label> <n>``."""
    doc = fitz.open()
    for i in range(pages):
        page = doc.new_page()
        page.insert_text((72, 72), f"{label} {i + 1}")
    data = doc.tobytes()
    doc.close()
    return data


def page_texts(data: bytes) -> list[str]:
    with fitz.open(stream=data, filetype="pdf") as doc:
        return [page.get_text().strip() for page in doc]


@pytest.fixture
def pdf():
    return make_pdf


@pytest.fixture
def read_pages():
    return page_texts


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


@pytest.fixture
def session_factory(tmp_path) -> sessionmaker:
    """File-backed SQLite so worker threads can open their own connections."""
    engine = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'surge.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    yield factory
    engine.dispose()


@pytest.fixture
def db(session_factory) -> Session:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def store(tmp_path) -> LocalObjectStore:
    return LocalObjectStore(
        tmp_path / "objects",
        signing_key=Fernet.generate_key().decode("utf-8"),
        public_base_url="http://testserver",
    )


class Seeder:
    """Builds a small organization graph in one session."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def organization(self, name: str = "Acme Wealth", logo_url: str | None = "https://cdn.example/logo.png"):
        org = Organization(name=name, logo_url=logo_url)
        self.db.add(org)
        self.db.flush()
        return org

    def household(
        self,
        org: Organization | None,
        *,
        clients: Iterable[tuple[str, str]] = (("John", "Doe"),),
        advisors: Iterable[str] = ("adv-1",),
        accounts: Iterable[dict] | None = None,
        reports: Iterable[str] = (),
    ) -> Household:
        household = Household(organization=org, lead_advisor_ids=list(advisors))
        for i, (first, last) in enumerate(clients):
            household.clients.append(Client(first_name=first, last_name=last, position=i))
        if accounts is None:
            accounts = [
                {"systematic_withdraw_amount": 500.0, "cash": 10.0, "income": 20.0, "annuities": 30.0, "growth": 40.0}
            ]
        for fields in accounts:
            household.accounts.append(Account(**fields))
        for report_type in reports:
            household.report_records.append(
                ReportRecord(report_type=report_type, current_data={"source": report_type}, warnings=[])
            )
        self.db.add(household)
        self.db.flush()
        return household

    def surge(
        self,
        org: Organization,
        *,
        name: str = "Fall Review",
        report_types: Iterable[str] = ("BUCKETS", "NET_WORTH"),
        order: Iterable[str] | None = None,
    ) -> Surge:
        report_types = list(report_types)
        surge = Surge(
            organization_id=org.id,
            name=name,
            start_date=date(2026, 10, 1),
            end_date=date(2026, 12, 31),
            report_types=report_types,
            order=list(order) if order is not None else list(report_types),
            created_by="user-1",
        )
        self.db.add(surge)
        self.db.flush()
        return surge

    def upload(self, surge: Surge, store, data: bytes, *, file_name: str = "insert.pdf", in_order: bool = True):
        upload = SurgeUpload(file_name=file_name, storage_key="", position=len(surge.uploads))
        surge.uploads.append(upload)
        self.db.flush()
        upload.storage_key = build_upload_key(surge.id, upload.id)
        if data is not None:
            store.put_bytes(upload.storage_key, data)
        if in_order:
            surge.order = [*surge.order, upload.id]
        self.db.flush()
        return upload


@pytest.fixture
def seed(db) -> Seeder:
    return Seeder(db)


# ---------------------------------------------------------------------------
# Collaborator doubles
# ---------------------------------------------------------------------------


class FakeRenderer:
    """Renders ``report:<TYPE>`` pages.

    Types in *failing* raise ``RenderError`` for every household;
    ``(household_id, TYPE)`` pairs in *failing_for* raise only for that one.
    """

    def __init__(self, session_factory: sessionmaker, failing: Iterable[str] = ()) -> None:
        self._session_factory = session_factory
        self.failing = set(failing)
        self.failing_for: set[tuple] = set()
        self.calls: list[str] = []

    def render(self, record_id) -> bytes:
        with self._session_factory() as session:
            record = session.get(ReportRecord, record_id)
            report_type = record.report_type
            household_id = record.household_id
        self.calls.append(report_type)
        if report_type in self.failing or (household_id, report_type) in self.failing_for:
            raise RenderError(f"renderer down for {report_type}")
        return make_pdf(f"report:{report_type}")


class FailingPutStore:
    """Delegates to *inner* but refuses to write the listed keys."""

    def __init__(self, inner, fail_keys: Iterable[str]) -> None:
        self.inner = inner
        self.fail_keys = set(fail_keys)

    def put_bytes(self, key, data, **kwargs):
        if key in self.fail_keys:
            raise StorageError(f"disk full writing {key}")
        return self.inner.put_bytes(key, data, **kwargs)

    def __getattr__(self, name):
        return getattr(self.inner, name)


@pytest.fixture
def renderer(session_factory) -> FakeRenderer:
    return FakeRenderer(session_factory)


@pytest.fixture
def failing_store(store):
    def _wrap(fail_keys: Iterable[str]) -> FailingPutStore:
        return FailingPutStore(store, fail_keys)

    return _wrap
