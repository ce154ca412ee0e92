"""Shared fixtures for the API test suite.

Every collaborator is an in-memory fake: the app gets a ready AtlasSession
on app.state.session before the first request, so the startup handler never
touches the network.

Auth injection: we patch auth._cache_get so that magic test API keys
instantly resolve to the desired AuthContext without bcrypt.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from starlette.testclient import TestClient

from atlas_api.auth import AuthContext
from atlas_api.session import AtlasSession
from atlas_dedup.blacklist import Blacklist
from tests.conftest import WARSAW, FakeGenerative, FakeGeocoder, FakeStore, make_record, offset_north

# ---------------------------------------------------------------------------
# Sample landmarks around central Warsaw; store-6 duplicates store-1
# ---------------------------------------------------------------------------


def _at(metres):
    return offset_north(WARSAW, metres)


def sample_landmarks():
    return [
        make_record(
            "store-1", "Palace of Culture", WARSAW.lat, WARSAW.lng,
            city="Warsaw", country="Poland", external_ref="ChIJpalace",
            image_url="https://img.example/palace.jpg",
        ),
        make_record("store-2", "Warsaw Uprising Museum", _at(400).lat, _at(400).lng, city="Warsaw", country="Poland"),
        make_record("store-3", "Royal Castle", _at(1_500).lat, _at(1_500).lng, city="Warsaw", country="Poland"),
        make_record("store-4", "Lazienki Palace", _at(2_500).lat, _at(2_500).lng, city="Warsaw", country="Poland"),
        make_record("store-5", "National Stadium", _at(3_500).lat, _at(3_500).lng, city="Warsaw", country="Poland"),
        make_record(
            "store-6", "Palace of Culture (Main Hall)", _at(300).lat, _at(300).lng,
            description="Congress hall inside the palace",
        ),
    ]


# ---------------------------------------------------------------------------
# Magic test API keys → AuthContext mapping
# ---------------------------------------------------------------------------

ADMIN_KEY = "atlas_test_admin_0000000000000000"
PUBLIC_KEY = "atlas_test_public_0000000000000000"

_TEST_KEYS = {
    ADMIN_KEY: AuthContext(tier="admin", actor_id="test:admin_key", actor_type="operator"),
    PUBLIC_KEY: AuthContext(tier="public", actor_id="test:public_key", actor_type="api_user"),
}


def _patched_cache_get(api_key: str):
    """Drop-in replacement for auth._cache_get that recognises test keys."""
    return _TEST_KEYS.get(api_key)


# ---------------------------------------------------------------------------
# App fixture
# ---------------------------------------------------------------------------


@pytest.fixture()
def store():
    return FakeStore(sample_landmarks())


@pytest.fixture()
def session(store, tmp_path):
    session = AtlasSession.build(
        store=store,
        blacklist=Blacklist(tmp_path / "blacklist.json"),
        generative=FakeGenerative(),
        geocoder=FakeGeocoder({"warsaw": WARSAW}),
    )
    asyncio.run(session.cache.load())
    return session


@pytest.fixture()
def app(session):
    with (
        patch("atlas_api.auth._cache_get", side_effect=_patched_cache_get),
        patch("atlas_api.auth._validate_key", return_value=None),
    ):
        from atlas_api.app import app as _app

        _app.state.session = session
        # Set server_started_at on app.state (normally done in startup event)
        _app.state.server_started_at = datetime(2026, 2, 24, 0, 0, 0, tzinfo=timezone.utc)

        yield _app

        _app.state.session = None


# ---------------------------------------------------------------------------
# Client fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def client(app):
    """Unauthenticated (public tier) TestClient — no API key header."""
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture()
def public_key_client(app):
    """Authenticated caller below admin tier."""
    return TestClient(app, raise_server_exceptions=False, headers={"X-API-Key": PUBLIC_KEY})


@pytest.fixture()
def admin_client(app):
    """admin tier TestClient."""
    return TestClient(app, raise_server_exceptions=False, headers={"X-API-Key": ADMIN_KEY})
