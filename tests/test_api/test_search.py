"""Tests for the search endpoints."""

from __future__ import annotations

from atlas_api.errors import RateLimitError
from tests.conftest import WARSAW

KRAKOW = {"lat": 50.0647, "lng": 19.9450}


class TestSearch:
    def test_dense_area_served_from_store(self, client, session):
        resp = client.get("/api/search", params={"lat": WARSAW.lat, "lng": WARSAW.lng})
        assert resp.status_code == 200
        body = resp.json()
        assert body["count"] == 6
        assert body["store_count"] == 6
        assert body["expanded"] is False
        assert body["narrative"] == "6 landmarks found in database"
        assert body["radius_m"] == 50_000
        assert session.generative.calls == []

    def test_record_shape(self, client):
        body = client.get("/api/search", params={"lat": WARSAW.lat, "lng": WARSAW.lng}).json()
        first = body["records"][0]
        assert first["id"] == "store-1"
        assert first["coordinates"] == {"lat": WARSAW.lat, "lng": WARSAW.lng}
        assert first["imageUrl"] == "https://img.example/palace.jpg"
        assert first["provenance"] == "persistent"

    def test_sparse_area_expands(self, client, session):
        resp = client.get("/api/search", params={**KRAKOW, "q": "Krakow"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["expanded"] is True
        assert body["count"] == 0
        assert body["narrative"] == (
            "Only 0 landmarks found in database, expanding search. "
            "No other qualifying landmarks found in this area"
        )
        assert session.generative.calls[0][0] == "Krakow"

    def test_rate_limited_lookup_is_not_an_error(self, client, session):
        session.generative.error = RateLimitError("quota", source="generative")
        resp = client.get("/api/search", params=KRAKOW)
        assert resp.status_code == 200
        assert resp.json()["rate_limited"] is True

    def test_sentinel_anchor_rejected(self, client):
        resp = client.get("/api/search", params={"lat": 0, "lng": 0})
        assert resp.status_code == 422

    def test_out_of_range_latitude(self, client):
        resp = client.get("/api/search", params={"lat": 95, "lng": 21})
        assert resp.status_code == 422

    def test_custom_radius(self, client):
        body = client.get("/api/search", params={"lat": WARSAW.lat, "lng": WARSAW.lng, "radius_m": 1_000}).json()
        assert body["store_count"] == 3
        assert body["radius_m"] == 1_000

    def test_starting_up(self, app, client):
        app.state.session = None
        resp = client.get("/api/search", params={"lat": WARSAW.lat, "lng": WARSAW.lng})
        assert resp.status_code == 503


class TestTextSearch:
    def test_geocoded(self, client):
        resp = client.get("/api/search/text", params={"q": "Warsaw"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["anchor"] == {"lat": WARSAW.lat, "lng": WARSAW.lng}
        assert body["count"] == 6

    def test_unknown_place(self, client):
        resp = client.get("/api/search/text", params={"q": "Atlantis"})
        assert resp.status_code == 404

    def test_query_required(self, client):
        assert client.get("/api/search/text").status_code == 422
