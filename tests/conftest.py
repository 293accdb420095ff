"""
Pytest configuration and shared fixtures.
"""

import os
import sys
from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

sys.path.append(os.path.join(os.getcwd(), "src"))

from sprintpulse.engine.activity import (  # noqa: E402
    IssueSnapshot,
    ProjectActivity,
    ProjectMember,
    StandupEntry,
)
from sprintpulse.engine.types import IssuePriority  # noqa: E402
from sprintpulse.storage.models import Base  # noqa: E402
from sprintpulse.storage.postgres_adapter import PostgresAdapter, PostgresConfig  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment() -> None:
    """Set up test environment variables."""
    os.environ.setdefault("APP_ENV", "test")
    os.environ.setdefault("DEBUG", "true")


def at(day: str, hour: int = 9) -> datetime:
    return datetime.fromisoformat(day).replace(hour=hour, tzinfo=timezone.utc)


@pytest.fixture
def session():
    """In-memory SQLite session with the sprint health tables."""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine)
    session = Session()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def sqlite_adapter():
    """PostgresAdapter pointed at in-memory SQLite."""
    adapter = PostgresAdapter(PostgresConfig(DATABASE_URL="sqlite:///:memory:"))
    adapter.connect()
    adapter.create_tables()
    yield adapter
    adapter.close()


@pytest.fixture
def team_activity() -> ProjectActivity:
    """
    Three members on 2026-07-10:
    - Alice posts on 07-08, 07-09 and 07-10 with the same blocker each time
    - Bob posts today with six open linked issues
    - Cara never posts
    Issue i1 has been untouched since 07-05 and is not mentioned anywhere.
    """
    issues = [
        IssueSnapshot(
            id="i1", key="SP-1", title="Legacy export", status="TODO",
            priority=IssuePriority.LOW, created_at=at("2026-06-20"), updated_at=at("2026-07-05"),
        ),
        IssueSnapshot(
            id="i2", key="SP-2", title="API client", status="IN_PROGRESS",
            created_at=at("2026-07-01"), updated_at=at("2026-07-05"),
        ),
    ]
    issues += [
        IssueSnapshot(
            id=f"b{n}", key=f"SP-{10 + n}", title=f"Checkout step {n}", status="IN_PROGRESS",
            created_at=at("2026-07-06"), updated_at=at("2026-07-09"),
        )
        for n in range(1, 7)
    ]

    entries = [
        StandupEntry(
            id=f"a-{day}", user_id="u1", date=at(day),
            blockers="Waiting on API credentials from vendor",
            linked_issue_ids=["i2"],
        )
        for day in ("2026-07-08", "2026-07-09", "2026-07-10")
    ]
    entries.append(StandupEntry(
        id="b-2026-07-10", user_id="u2", date=at("2026-07-10"),
        summary_today="Checkout flow",
        linked_issue_ids=[f"b{n}" for n in range(1, 7)],
    ))

    return ProjectActivity(
        project_id="p1",
        members=[
            ProjectMember(user_id="u1", name="Alice"),
            ProjectMember(user_id="u2", name="Bob"),
            ProjectMember(user_id="u3", email="cara@example.com"),
        ],
        standup_entries=entries,
        issues=issues,
        quality_scores={"2026-07-10": 45},
        proactive_guidance_enabled=True,
    )
