"""Shared pytest configuration and fixtures."""

import pytest

from userstore import db
from userstore.metrics import metrics
from userstore.testing import (  # noqa: F401
    user_store,
    user_store_auto_create,
    user_store_local,
    user_store_with_archive,
)


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch, tmp_path):
    """Keep the developer's environment and config file out of tests."""
    for name in ("USERSTORE_URI", "USERSTORE_BATCH_SIZE", "USERSTORE_AUTO_CREATE_USER"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))


@pytest.fixture(autouse=True)
def reset_metrics():
    """Start each test with empty metrics."""
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def conn():
    """Fresh in-memory connection with the schema provisioned."""
    with db.scoped_connection(":memory:") as conn:
        db.init_db_with_conn(conn)
        yield conn
