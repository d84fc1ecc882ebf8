"""Shared test fixtures and configuration.

Sets up fake environment variables so nourishplate.config doesn't sys.exit(),
and provides common fixtures like temp databases.
"""

import os
import tempfile

# Patch env vars BEFORE any nourishplate imports
os.environ.setdefault("RESEND_API_KEY", "re_fake_key_for_tests")
os.environ.setdefault("LLM_API_KEY", "fake-llm-key-for-tests")
os.environ.setdefault("LLM_PROVIDER", "gemini")
os.environ.setdefault("EMAIL_PROVIDER", "log")
os.environ.setdefault("APP_BASE_URL", "https://app.nourishplate.test")
os.environ.setdefault(
    "DATABASE_PATH", os.path.join(tempfile.mkdtemp(prefix="nourishplate-"), "test.db")
)

import pytest


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_nourishplate.db")


@pytest.fixture
def family_db(tmp_db_path):
    """Return a FamilyDB instance backed by a temp file."""
    from nourishplate.data.db import FamilyDB
    return FamilyDB(db_path=tmp_db_path)


@pytest.fixture
def clock():
    """A settable clock for cache expiry tests (seconds since epoch)."""
    class _Clock:
        now = 1_700_000_000.0

        def __call__(self):
            return self.now

    return _Clock()


@pytest.fixture
def result_cache(tmp_path, clock):
    """Return a ResultCache with a 1 hour TTL and a controllable clock."""
    from nourishplate.data.cache import ResultCache
    return ResultCache(db_path=str(tmp_path / "test_cache.db"), ttl_seconds=3600, clock=clock)


@pytest.fixture
def log_email():
    """Return an in-memory email adapter that records what it sends."""
    from nourishplate.adapters.log_email import LogEmailAdapter
    return LogEmailAdapter()


@pytest.fixture
def dispatcher(log_email):
    from nourishplate.core.email_dispatcher import EmailDispatcher, get_sender_profile
    return EmailDispatcher(email_port=log_email, sender=get_sender_profile("nourishplate"))
