"""
Pytest configuration and fixtures.
"""
import itertools
import uuid
from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from unittest.mock import patch

from app.core.database import Base, get_db
from app.main import app
from app.models import AggregationStrategy, AuditSchema, SchemaSection, Store, TemplateItem
from app.services.records import ChecklistItem

# Use file-based SQLite for testing (more reliable than in-memory)
TEST_DATABASE_URL = "sqlite:///./test_food_safety_auditor.db"

test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    pool_pre_ping=False,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

# section number, section name, [(reference, title, weight)]
DEFAULT_SECTIONS = [
    (1, "Food Storage", [
        ("1.1", "Chiller temperature at or below 5C", 2.0),
        ("1.2", "Raw and cooked food separated", 2.0),
        ("1.10", "Dry store off the floor", 4.0),
    ]),
    (2, "Personal Hygiene", [
        ("2.1", "Hand wash station stocked", 2.0),
        ("2.2", "Staff wearing hair restraints", 2.0),
    ]),
]


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """Create all tables before tests run and drop them after the session."""
    Base.metadata.create_all(bind=test_engine)
    yield
    Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function", autouse=True)
def disable_api_key():
    """Disable API key authentication for all tests."""
    with patch("app.core.config.settings.API_KEY", None):
        yield


@pytest.fixture(scope="function", autouse=True)
def clear_threshold_cache():
    """Every test starts with an empty threshold cache."""
    app.state.threshold_cache.clear()
    yield
    app.state.threshold_cache.clear()


def override_get_db():
    """Override get_db dependency to use test database session."""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="function")
def client():
    """Test client on the test database, authentication disabled."""
    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def client_with_auth():
    """
    Test client with API key authentication enabled.

    Keys: "test-key" (admin), "auditor-key" (auditor), "viewer-key" (viewer).
    """
    app.dependency_overrides[get_db] = override_get_db
    with patch("app.core.config.settings.API_KEY", "test-key"), \
            patch("app.core.config.settings.AUDITOR_API_KEY", "auditor-key"), \
            patch("app.core.config.settings.VIEWER_API_KEY", "viewer-key"):
        yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def db_session():
    """Provide a database session for tests that need direct DB access."""
    db = TestingSessionLocal()
    try:
        yield db
        db.rollback()
    finally:
        db.close()


def unique(prefix: str) -> str:
    return f"{prefix}{uuid.uuid4().hex[:8].upper()}"


@pytest.fixture
def store_factory(db_session):
    """Create stores with unique codes."""
    def make(name: str = "Downtown Kitchen") -> Store:
        store = Store(store_code=unique("ST"), store_name=name, brand="Test Brand")
        db_session.add(store)
        db_session.commit()
        db_session.refresh(store)
        return store
    return make


@pytest.fixture
def schema_factory(db_session):
    """
    Create a checklist schema with sections and template items.

    Each schema gets its own document prefix so numbering starts at 0001.
    """
    def make(
        sections=None,
        strategy: AggregationStrategy = AggregationStrategy.WEIGHTED,
        department_names=None,
    ) -> AuditSchema:
        schema = AuditSchema(
            schema_name="Food Safety Checklist",
            report_title="Food Safety Audit Report",
            document_prefix=unique("T"),
            aggregation_strategy=strategy,
            department_names=department_names,
        )
        db_session.add(schema)
        db_session.flush()
        for number, name, items in sections or DEFAULT_SECTIONS:
            section = SchemaSection(schema_id=schema.id, section_number=number, section_name=name)
            db_session.add(section)
            db_session.flush()
            for order, (reference, title, weight) in enumerate(items):
                db_session.add(TemplateItem(
                    section_id=section.id,
                    reference_value=reference,
                    title=title,
                    weight=weight,
                    sort_order=order,
                ))
        db_session.commit()
        db_session.refresh(schema)
        return schema
    return make


@pytest.fixture
def audit_payload(store_factory, schema_factory):
    """Request body for POST /audits on a fresh store and schema."""
    def make(cycle: str = "C1", audit_date: date = date(2024, 2, 10), store=None, schema=None):
        store = store or store_factory()
        schema = schema or schema_factory()
        return {
            "store_id": store.id,
            "schema_id": schema.id,
            "audit_date": audit_date.isoformat(),
            "cycle": cycle,
            "auditors": "J. Doe",
        }
    return make


_item_ids = itertools.count(1)


def make_item(
    reference: str,
    choice=None,
    weight: float = 2.0,
    section_number: int = 1,
    response_id: int = None,
    **fields,
) -> ChecklistItem:
    """Build a ChecklistItem for unit tests."""
    return ChecklistItem(
        response_id=response_id if response_id is not None else next(_item_ids),
        section_id=section_number * 10,
        section_number=section_number,
        section_name=fields.pop("section_name", f"Section {section_number}"),
        reference_value=reference,
        title=fields.pop("title", f"Item {reference}"),
        weight=weight,
        answer_domain=fields.pop("answer_domain", ("Yes", "Partially", "No", "NA")),
        selected_choice=choice,
        **fields,
    )
