"""Pytest fixtures and configuration."""

import pytest
from erdeploy.config.settings import Settings
from erdeploy.deployment import DeploymentOrchestrator, DeploymentStore, InMemoryPlatform


BLOG_DIAGRAM = """erDiagram
POST{string id PK}
TAG{string id PK}
POST }o--o{ TAG : tagged_with
"""

CRM_DIAGRAM = """erDiagram
    %% Accounts sponsor projects made of milestones
    Account {
        guid accountid PK
        string name
    }
    Project {
        guid project_id PK
        string title
        decimal budget
    }
    Milestone {
        guid milestone_id PK
        string name
        guid project_id FK
    }
    Project ||--o{ Milestone : contains
    Account ||--o{ Project : sponsors
"""


class FakeClock:
    """Manually advanced clock for time-dependent tests."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def blog_diagram():
    """Two entities joined by a many-to-many relationship."""
    return BLOG_DIAGRAM


@pytest.fixture
def crm_diagram():
    """One standard entity and two custom entities."""
    return CRM_DIAGRAM


@pytest.fixture
def clock():
    """Fresh fake clock."""
    return FakeClock()


@pytest.fixture
def settings():
    """Settings with a complete target configuration and no retry delay."""
    return Settings(
        platform_url="https://platform.test",
        tenant_id="tenant",
        client_id="client",
        client_secret="secret",
        remote_max_retries=3,
        remote_retry_delay=0.0,
        max_concurrent_operations=4,
        deployment_retention_seconds=300.0,
    )


@pytest.fixture
def platform():
    """Fresh in-memory platform."""
    return InMemoryPlatform()


@pytest.fixture
def make_orchestrator(settings, clock):
    """Build an orchestrator around a given platform."""

    def _make(platform, **kwargs):
        kwargs.setdefault("settings", settings)
        kwargs.setdefault(
            "store",
            DeploymentStore(kwargs["settings"].deployment_retention_seconds, clock=clock),
        )
        kwargs.setdefault("sleep", lambda seconds: None)
        return DeploymentOrchestrator(lambda target: platform, **kwargs)

    return _make
