"""Shared fixtures for sheet catalog tests."""

import pytest

from sheet_catalog.application.catalog import CatalogRepository
from sheet_catalog.domain.value_objects import Identity, Session
from sheet_catalog.events import EventBus
from sheet_catalog.infrastructure.repositories import (
    InMemoryBlobStore,
    InMemoryIdentityProvider,
    InMemoryRelationalStore,
)

ROOT_ADMIN = "root@lege.music"


def make_session(user_id: str = "user-1", email: str = "singer@example.com", **metadata) -> Session:
    """Build a session without going through an identity provider."""
    return Session(access_token=f"token-{user_id}", user=Identity(id=user_id, email=email, metadata=metadata))


@pytest.fixture
def store():
    return InMemoryRelationalStore()


@pytest.fixture
def blobs():
    return InMemoryBlobStore()


@pytest.fixture
def identity():
    return InMemoryIdentityProvider()


@pytest.fixture
def bus():
    bus = EventBus()
    yield bus
    bus.clear()


@pytest.fixture
def catalog(store, blobs, bus):
    return CatalogRepository(store, blobs, root_admin_email=ROOT_ADMIN, event_bus=bus)


@pytest.fixture
def session():
    return make_session()


@pytest.fixture
def session_factory():
    return make_session
