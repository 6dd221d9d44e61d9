"""
Test fixtures for the VPS availability pipeline.

Provides database engine/session fixtures and subscriber/notification
factories.
"""

import secrets
from typing import Generator, List

import pytest
from sqlmodel import Session, SQLModel, create_engine
from sqlalchemy.pool import StaticPool

from app.core.metrics import pipeline_metrics
from app.models.notification import EmailNotification
from app.models.status import StatusChange
from app.models.user import User, UserSubscription

# Use in-memory SQLite for unit tests (fast, isolated)
TEST_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture(autouse=True)
def clear_pipeline_metrics():
    """Reset process-wide run metrics between tests."""
    pipeline_metrics.clear()
    yield
    pipeline_metrics.clear()


@pytest.fixture(scope="function")
def test_engine():
    """Create a test database engine with in-memory SQLite."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def test_session(test_engine) -> Generator[Session, None, None]:
    """Provide a test database session."""
    with Session(test_engine) as session:
        yield session


def make_user(session: Session, email: str, verified: bool = True) -> User:
    user = User(
        email=email,
        email_verified=verified,
        unsubscribe_token=secrets.token_hex(16),
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def subscribe(session: Session, user: User, model: int, datacenter: str, active: bool = True) -> UserSubscription:
    sub = UserSubscription(user_id=user.id, model=model, datacenter=datacenter, is_active=active)
    session.add(sub)
    session.commit()
    session.refresh(sub)
    return sub


@pytest.fixture
def gra_subscribers(test_session: Session) -> List[User]:
    """
    Three verified users subscribed to model 3 in GRA, plus noise:

    - an unverified user subscribed to the same pair (must be ignored)
    - an inactive subscription to the same pair (must be ignored)
    - a subscriber to model 3 in SBG (different pair)
    """
    users = [make_user(test_session, f"gra{i}@example.com") for i in range(3)]
    for user in users:
        subscribe(test_session, user, 3, "GRA")

    unverified = make_user(test_session, "unverified@example.com", verified=False)
    subscribe(test_session, unverified, 3, "GRA")

    lapsed = make_user(test_session, "lapsed@example.com")
    subscribe(test_session, lapsed, 3, "GRA", active=False)

    other = make_user(test_session, "sbg@example.com")
    subscribe(test_session, other, 3, "SBG")

    return users


@pytest.fixture
def pending_jobs(test_session: Session):
    """Factory creating N pending notifications, one user each."""

    def _create(count: int, model: int = 1, datacenter: str = "GRA") -> List[EmailNotification]:
        jobs = []
        for i in range(count):
            user = make_user(test_session, f"user{i}@example.com")
            job = EmailNotification(
                user_id=user.id,
                model=model,
                datacenter=datacenter,
                status_change=StatusChange.BECAME_AVAILABLE.value,
            )
            test_session.add(job)
            jobs.append(job)
        test_session.commit()
        for job in jobs:
            test_session.refresh(job)
        return jobs

    return _create
