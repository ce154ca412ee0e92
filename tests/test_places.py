"""Tests for atlas_api — place details enrichment."""

import httpx
import pytest

from atlas_api.errors import NotFoundError, PartialEnrichmentFailure, RateLimitError, TransientIOError
from atlas_api.places import PlacesEnricher, needs_enrichment
from tests.conftest import FakePlaces, make_record


def _enricher(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return PlacesEnricher("places-key", base_url="https://places.test/api/place", client=client)


def _details(status="OK", **result):
    body = {"status": status}
    if result:
        body["result"] = result
    return httpx.Response(200, json=body)


class TestNeedsEnrichment:
    def test_place_id_without_image(self):
        assert needs_enrichment(make_record(external_ref="ChIJ1"))

    def test_already_has_image(self):
        assert not needs_enrichment(make_record(external_ref="ChIJ1", image_url="https://img/1.jpg"))

    def test_no_place_id(self):
        assert not needs_enrichment(make_record())


@pytest.mark.asyncio
class TestDetails:
    async def test_photo_and_url(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            return _details(photos=[{"photo_reference": "ref-1"}], url="https://maps.google.com/?cid=9")

        details = await _enricher(handler).details_for("ChIJ1")

        assert seen["path"] == "/api/place/details/json"
        assert seen["params"]["place_id"] == "ChIJ1"
        assert seen["params"]["key"] == "places-key"
        assert details["canonical_map_url"] == "https://maps.google.com/?cid=9"
        assert details["image_url"].startswith("https://places.test/api/place/photo?maxwidth=1200")
        assert "photo_reference=ref-1" in details["image_url"]

    async def test_no_photo(self):
        details = await _enricher(lambda request: _details(url="https://maps.google.com/?cid=9")).details_for("ChIJ1")
        assert "image_url" not in details

    async def test_over_query_limit(self):
        with pytest.raises(RateLimitError):
            await _enricher(lambda request: _details("OVER_QUERY_LIMIT")).details_for("ChIJ1")

    async def test_not_found(self):
        with pytest.raises(NotFoundError):
            await _enricher(lambda request: _details("NOT_FOUND")).details_for("ChIJ1")

    async def test_request_denied(self):
        with pytest.raises(TransientIOError):
            await _enricher(lambda request: _details("REQUEST_DENIED")).details_for("ChIJ1")


@pytest.mark.asyncio
class TestEnrich:
    async def test_fills_only_blank_fields(self):
        places = FakePlaces({"ChIJ1": {"image_url": "https://img/1.jpg", "canonical_map_url": "https://maps/new"}})
        record = make_record(external_ref="ChIJ1", canonical_map_url="https://maps/own")

        enriched = await places.enrich(record)

        assert enriched.image_url == "https://img/1.jpg"
        assert enriched.canonical_map_url == "https://maps/own"
        assert record.image_url is None

    async def test_failure_is_partial(self):
        with pytest.raises(PartialEnrichmentFailure):
            await FakePlaces().enrich(make_record(external_ref="ChIJ-missing"))

    async def test_batch_limit_and_order(self):
        details = {f"ChIJ{i}": {"image_url": f"https://img/{i}.jpg"} for i in range(3)}
        places = FakePlaces(details)
        records = [
            make_record("store-0", external_ref="ChIJ0"),
            make_record("store-x"),
            make_record("store-1", external_ref="ChIJ1"),
            make_record("store-2", external_ref="ChIJ2"),
        ]

        enriched = await places.enrich_batch(records, limit=2)

        assert [r.id for r in enriched] == ["store-0", "store-x", "store-1", "store-2"]
        assert sorted(places.calls) == ["ChIJ0", "ChIJ1"]
        assert enriched[0].image_url == "https://img/0.jpg"
        assert enriched[1] is records[1]
        assert enriched[3] is records[3]

    async def test_batch_keeps_failed_records(self):
        places = FakePlaces({"ChIJ1": {"image_url": "https://img/1.jpg"}})
        records = [make_record("store-0", external_ref="ChIJ0"), make_record("store-1", external_ref="ChIJ1")]

        enriched = await places.enrich_batch(records)

        assert enriched[0] is records[0]
        assert enriched[1].image_url == "https://img/1.jpg"
