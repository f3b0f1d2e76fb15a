"""
Shared fixtures for the publication portal tests.

Route tests run the real application (middleware, exception handlers,
routers) against mocked repositories and object storage; no database or
S3 endpoint is needed.
"""

import os

# Settings are cached on first import, so the test environment is fixed here.
os.environ.setdefault("PUBPORTAL_RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("PUBPORTAL_PASSWORD_BCRYPT_ROUNDS", "4")
os.environ.setdefault("PUBPORTAL_ENVIRONMENT", "development")
os.environ.setdefault("PUBPORTAL_TRACING_ENABLED", "false")
os.environ.setdefault("PUBPORTAL_LOG_FORMAT", "text")

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from pubportal.dependencies import (
    get_category_repository,
    get_history_repository,
    get_login_log_repository,
    get_notification_repository,
    get_person_repository,
    get_publication_repository,
    get_storage_service,
    get_user_repository,
)
from pubportal.models.auth import Role
from pubportal.repositories.category_repo import CategoryRepository
from pubportal.repositories.history_repo import HistoryRepository
from pubportal.repositories.login_log_repo import LoginLogRepository
from pubportal.repositories.notification_repo import NotificationRepository
from pubportal.repositories.person_repo import PersonRepository
from pubportal.repositories.publication_repo import PublicationRepository
from pubportal.repositories.user_repo import UserRepository
from pubportal.services.auth_service import create_session_token
from pubportal.services.storage_service import StorageService
from tests.factories import make_user

SESSION_COOKIE = "app_session"


# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture
def repos():
    """Mocked repositories and storage; async methods are AsyncMocks."""
    storage = MagicMock(spec=StorageService)
    storage.public_url.side_effect = lambda bucket, key: f"http://storage.test/{bucket}/{key}"
    storage.list_objects.return_value = []
    storage.delete_objects.return_value = 0

    return SimpleNamespace(
        users=MagicMock(spec=UserRepository),
        login_logs=MagicMock(spec=LoginLogRepository),
        publications=MagicMock(spec=PublicationRepository),
        history=MagicMock(spec=HistoryRepository),
        categories=MagicMock(spec=CategoryRepository),
        people=MagicMock(spec=PersonRepository),
        notifications=MagicMock(spec=NotificationRepository),
        storage=storage,
    )


@pytest.fixture
def app(repos):
    """Application with repositories and storage replaced by mocks."""
    from pubportal.main import app as application

    application.dependency_overrides = {
        get_user_repository: lambda: repos.users,
        get_login_log_repository: lambda: repos.login_logs,
        get_publication_repository: lambda: repos.publications,
        get_history_repository: lambda: repos.history,
        get_category_repository: lambda: repos.categories,
        get_person_repository: lambda: repos.people,
        get_notification_repository: lambda: repos.notifications,
        get_storage_service: lambda: repos.storage,
    }
    yield application
    application.dependency_overrides = {}


@pytest.fixture
def client(app):
    """Test client without lifespan (no database pool is opened)."""
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def login_as(client):
    """
    Put a signed session cookie for a role on the client.

    Usage:
        login_as(Role.STAFF, user_id=3)
    """
    def _login(role: Role, user_id: int = 1, username: str = "tester") -> TestClient:
        user = make_user(user_id=user_id, username=username, role=role.value)
        client.cookies.set(SESSION_COOKIE, create_session_token(user))
        return client

    return _login
