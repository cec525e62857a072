"""
Shared pytest fixtures for the Lapse test suite.

Configuration is read from the environment at import time, so the data
directory is pointed somewhere disposable before any app module loads.
"""

import os
import tempfile

os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="lapse-test-"))
os.environ.setdefault("REAPER_ENABLED", "false")

from datetime import datetime, timedelta, timezone  # noqa: E402

import pytest  # noqa: E402

from database import create_session_factory, init_db  # noqa: E402
from api.objects.orm.object_model import ObjectModel  # noqa: E402
from api.objects.repositories.objects_repository import SqlObjectRepository  # noqa: E402
from api.objects.services.registry import ObjectRegistry, RegistryConfig  # noqa: E402
from tests.fakes import FrozenClock, InMemoryBlobStore  # noqa: E402

T0 = datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone.utc)


def count_records(session_factory) -> int:
    with session_factory() as session:
        return session.query(ObjectModel).count()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(T0)


@pytest.fixture
def session_factory(tmp_path):
    factory = create_session_factory(f"sqlite:///{tmp_path}/objects.db")
    init_db(factory)
    yield factory
    factory.kw["bind"].dispose()


@pytest.fixture
def repository(session_factory) -> SqlObjectRepository:
    return SqlObjectRepository(session_factory)


@pytest.fixture
def blob_store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def registry_config() -> RegistryConfig:
    return RegistryConfig(
        allowed_content_types=frozenset(
            {"text/plain", "application/pdf", "application/octet-stream"}
        ),
        max_size_bytes=1024,
        default_ttl=timedelta(hours=24),
        max_ttl=timedelta(hours=168),
        operation_timeout=2.0,
    )


@pytest.fixture
def registry(registry_config, blob_store, repository, clock) -> ObjectRegistry:
    return ObjectRegistry(registry_config, blob_store, repository, clock=clock)
