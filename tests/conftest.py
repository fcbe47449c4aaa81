import os

# Settings are read at import time; pin them before anything imports authcore.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["EMAIL_ENABLED"] = "false"
os.environ["DEFAULT_ACCOUNT_STATUS"] = "active"
os.environ.pop("PERMISSION_CATALOG_PATH", None)

import uuid  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import event  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker  # noqa: E402

from authcore.core.database import build_engine, session_scope  # noqa: E402
from authcore.core.security import hash_password  # noqa: E402
from authcore.models import Base  # noqa: E402
from authcore.models.user import AccountStatus, User  # noqa: E402
from authcore.rbac.catalog import seed  # noqa: E402
from authcore.services import email_service, role_service, user_service  # noqa: E402

PASSWORD = "CorrectHorse1!"


@pytest.fixture
async def engine(tmp_path):
    """Fresh file-backed SQLite database per test (shared by all sessions)."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'authcore.db'}")

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session_factory(engine):
    factory = async_sessionmaker(engine, expire_on_commit=False)
    async with session_scope(factory) as session:
        await seed(session)
    return factory


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


class FakeMailer:
    """Records every delivery instead of talking to SMTP."""

    def __init__(self):
        self.sent: list[tuple[str, str, dict]] = []
        self.succeed = True

    async def deliver(self, destination, template_kind, payload):
        self.sent.append((destination, template_kind, dict(payload)))
        return self.succeed

    def last(self, template_kind=None):
        for message in reversed(self.sent):
            if template_kind is None or message[1] == template_kind:
                return message
        raise AssertionError(f"no {template_kind or 'email'} delivered")


@pytest.fixture
def mailer(monkeypatch) -> FakeMailer:
    fake = FakeMailer()
    monkeypatch.setattr(email_service, "deliver", fake.deliver)
    return fake


@pytest.fixture
def make_user(db):
    """Insert a user with a known password under the given role name."""

    async def _make_user(
        email: str | None = None,
        role: str | None = "viewer",
        status: AccountStatus = AccountStatus.ACTIVE,
        password: str = PASSWORD,
        **extra,
    ) -> User:
        role_id = None
        if role is not None:
            role_id = (await role_service.get_role_by_name(role, db)).id
        user = await user_service.create_user(
            email=email or f"{uuid.uuid4().hex[:8]}@example.com",
            password_hash=hash_password(password),
            account_status=status,
            db=db,
            role_id=role_id,
            **extra,
        )
        await db.commit()
        return user

    return _make_user
