import os

from cryptography.fernet import Fernet

# must be in place before multipost.config is imported
os.environ.setdefault("FERNET_KEY", Fernet.generate_key().decode())
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("PUBLISH_POLL_INTERVAL", "0")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from multipost.db.base import Base
from multipost.db import models  # noqa: F401
from multipost.services.platforms.base import Capability, PublishResult

class FakeCapability(Capability):
    """Stands in for a platform: returns a fixed id, or raises the given error."""

    def __init__(self, platform, result="remote-1", error=None, refresh_mode=None, refreshed=None):
        super().__init__()
        self.platform = platform
        self.refresh_mode = refresh_mode
        self.result = result
        self.error = error
        self.refreshed = refreshed
        self.calls = []
        self.refresh_calls = []

    def publish(self, credential, account, post):
        self.calls.append((credential, account, post))
        if self.error:
            raise self.error
        return PublishResult(platform_post_id=self.result)

    def refresh(self, credential):
        self.refresh_calls.append(credential)
        if isinstance(self.refreshed, Exception):
            raise self.refreshed
        return self.refreshed

@pytest.fixture
def session_factory():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()

@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()

@pytest.fixture
def fake_capability():
    return FakeCapability

@pytest.fixture
def make_account(db):
    from multipost.db import crud_accounts

    def _make(platform, org_id="org1", access_token="plain-access", refresh_token=None, expires_in=None, **kw):
        return crud_accounts.create_account(
            db, org_id, platform, access_token,
            refresh_token=refresh_token, expires_in=expires_in,
            platform_user_id=kw.get("platform_user_id", "u1"), username=kw.get("username", "someone"),
        )
    return _make
