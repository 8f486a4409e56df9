import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ADMIN_TOKEN", "test-admin-token")

from unittest.mock import MagicMock, Mock  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from chatbridge import dependencies  # noqa: E402
from chatbridge.database import Base, get_db  # noqa: E402
from chatbridge.main import app  # noqa: E402
from chatbridge.models import ChatwootAccount, DifyApp, PlatformMapping, TelegramBot  # noqa: E402
from chatbridge.services.cache import TTLCache  # noqa: E402
from chatbridge.services.configuration_service import ConfigurationService  # noqa: E402
from chatbridge.services.instance_directory import InstanceDirectory  # noqa: E402


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def db_session():
    """In-memory SQLite session with all tables created."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config_service(db_session, clock):
    return ConfigurationService(db_session, TTLCache(300, clock=clock))


@pytest.fixture
def directory(db_session, clock):
    return InstanceDirectory(db_session, TTLCache(300, clock=clock))


@pytest.fixture
def make_bot(db_session):
    def _make(**fields):
        bot = TelegramBot(
            name=fields.pop("name", "Support Bot"),
            bot_token=fields.pop("bot_token", "123:abc"),
            username=fields.pop("username", "support_bot"),
            is_active=fields.pop("is_active", True),
            **fields,
        )
        db_session.add(bot)
        db_session.commit()
        return bot

    return _make


@pytest.fixture
def make_account(db_session):
    def _make(**fields):
        account = ChatwootAccount(
            name=fields.pop("name", "Helpdesk"),
            base_url=fields.pop("base_url", "https://chatwoot.example.com"),
            access_token=fields.pop("access_token", "cw-token"),
            account_id=fields.pop("account_id", "7"),
            is_active=fields.pop("is_active", True),
            **fields,
        )
        db_session.add(account)
        db_session.commit()
        return account

    return _make


@pytest.fixture
def make_app(db_session):
    def _make(**fields):
        app = DifyApp(
            name=fields.pop("name", "Assistant"),
            api_url=fields.pop("api_url", "https://dify.example.com"),
            api_key=fields.pop("api_key", "app-key"),
            app_id=fields.pop("app_id", "app-1"),
            is_active=fields.pop("is_active", True),
            **fields,
        )
        db_session.add(app)
        db_session.commit()
        return app

    return _make


@pytest.fixture
def make_mapping(db_session):
    def _make(source_id, chatwoot_account_id=None, dify_app_id=None, **flags):
        mapping = PlatformMapping(
            source_platform="telegram",
            source_id=source_id,
            chatwoot_account_id=chatwoot_account_id,
            dify_app_id=dify_app_id,
            **flags,
        )
        db_session.add(mapping)
        db_session.commit()
        return mapping

    return _make


def mock_http_client(mock_client_class):
    """Wire a patched httpx.Client class so ``with httpx.Client() as c`` yields a MagicMock."""
    mock_client = MagicMock()
    mock_client_class.return_value.__enter__.return_value = mock_client
    return mock_client


def json_response(payload, status_code=200):
    response = Mock()
    response.status_code = status_code
    response.json.return_value = payload
    response.text = str(payload)
    response.content = b"{}" if payload is not None else b""
    return response


@pytest.fixture
def api_client(db_session):
    """TestClient bound to the in-memory session, with process caches reset."""

    def override_get_db():
        yield db_session

    dependencies.configuration_cache.clear()
    dependencies.instance_cache.clear()
    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
