"""
DDI Evidence Mining Engine - Entity Resolution Tests
Sprint 2: Name-to-identifier mapping and the RxNav client
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import asyncio
import httpx
import pytest

from src.core.errors import ResolutionServiceError
from src.core.models import EvidenceRecord, DrugReference, SourceType
from src.resolution.entity_resolver import EntityResolver
from src.resolution.rxnorm_client import RxNormClient


class FakeResolutionService:
    """In-memory stand-in for RxNav search"""

    def __init__(self, catalog=None, fail_on=(), delay=0.0):
        self.catalog = catalog or {}
        self.fail_on = set(fail_on)
        self.delay = delay
        self.calls = []

    async def search(self, name):
        self.calls.append(name)
        if self.delay:
            await asyncio.sleep(self.delay)
        if name in self.fail_on:
            raise ResolutionServiceError(f"service down for {name}")
        return self.catalog.get(name, [])


CATALOG = {
    "warfarin": [
        {"id": "855288", "term_type": "SCD"},
        {"id": "11289", "term_type": "IN"},
    ],
    "fluconazole": [{"id": "4450", "term_type": "IN"}],
    "coumadin": [{"id": "202421", "term_type": "BN"}],
}


class TestEntityResolver:

    @pytest.fixture
    def service(self):
        return FakeResolutionService(CATALOG, fail_on={"broken"})

    @pytest.fixture
    def resolver(self, service):
        return EntityResolver(service)

    def test_prefers_ingredient(self, resolver):
        assert asyncio.run(resolver.resolve("warfarin")) == "11289"

    def test_falls_back_to_first_result(self, resolver):
        assert asyncio.run(resolver.resolve("Coumadin")) == "202421"

    def test_cache_key_normalized(self, resolver, service):
        async def run():
            return [await resolver.resolve(n) for n in ("Warfarin", " warfarin ", "WARFARIN")]

        assert asyncio.run(run()) == ["11289"] * 3
        assert service.calls == ["warfarin"]

    def test_misses_are_cached(self, resolver, service):
        async def run():
            return await resolver.resolve("unobtainium"), await resolver.resolve("unobtainium")

        assert asyncio.run(run()) == (None, None)
        assert service.calls == ["unobtainium"]
        assert resolver.cache_stats() == {"size": 1, "unresolved": 1, "lookups": 1}

    def test_service_failure_yields_none(self, resolver):
        assert asyncio.run(resolver.resolve("broken")) is None

    def test_empty_name(self, resolver, service):
        assert asyncio.run(resolver.resolve("  ")) is None
        assert service.calls == []

    def test_concurrent_lookups_share_one_call(self):
        service = FakeResolutionService(CATALOG, delay=0.01)
        resolver = EntityResolver(service)

        async def run():
            return await asyncio.gather(*(resolver.resolve("fluconazole") for _ in range(5)))

        assert asyncio.run(run()) == ["4450"] * 5
        assert service.calls == ["fluconazole"]

    def test_resolve_record_fills_missing(self, resolver, service):
        record = EvidenceRecord(
            source_type=SourceType.PUBLICATION,
            source_id="1",
            drug_a=DrugReference("warfarin", "preset"),
            drug_b=DrugReference("fluconazole"),
        )
        asyncio.run(resolver.resolve_record(record))
        assert record.drug_a.resolved_id == "preset"
        assert record.drug_b.resolved_id == "4450"
        assert service.calls == ["fluconazole"]

    def test_select_identifier(self):
        assert EntityResolver.select_identifier([]) is None
        assert EntityResolver.select_identifier([{"id": 42, "term_type": "SBD"}]) == "42"

    def test_clear_cache(self, resolver, service):
        asyncio.run(resolver.resolve("fluconazole"))
        resolver.clear_cache()
        asyncio.run(resolver.resolve("fluconazole"))
        assert service.calls == ["fluconazole", "fluconazole"]


RXNAV_PAYLOAD = {
    "drugGroup": {
        "name": "warfarin",
        "conceptGroup": [
            {"tty": "BN", "conceptProperties": [
                {"rxcui": "202421", "name": "Coumadin", "tty": "BN"},
            ]},
            {"tty": "IN", "conceptProperties": [
                {"rxcui": "11289", "name": "warfarin"},
                {"name": "no identifier"},
            ]},
            {"tty": "SCD"},
        ],
    }
}


class TestRxNormClient:
    """RxNav drugs.json over a mocked transport"""

    def _client(self, handler):
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return RxNormClient(base_url="https://rxnav.test/REST/", http_client=http_client)

    def test_search(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["name"] = request.url.params["name"]
            return httpx.Response(200, json=RXNAV_PAYLOAD)

        results = asyncio.run(self._client(handler).search("warfarin"))
        assert seen == {"path": "/REST/drugs.json", "name": "warfarin"}
        assert results == [
            {"id": "202421", "name": "Coumadin", "term_type": "BN"},
            {"id": "11289", "name": "warfarin", "term_type": "IN"},
        ]

    def test_resolver_over_client(self):
        client = self._client(lambda request: httpx.Response(200, json=RXNAV_PAYLOAD))
        assert asyncio.run(EntityResolver(client).resolve("warfarin")) == "11289"

    def test_empty_payload(self):
        client = self._client(lambda request: httpx.Response(200, json={"drugGroup": {"name": "x"}}))
        assert asyncio.run(client.search("x")) == []

    def test_http_error_wrapped(self):
        client = self._client(lambda request: httpx.Response(503))
        with pytest.raises(ResolutionServiceError):
            asyncio.run(client.search("warfarin"))

    def test_malformed_json_wrapped(self):
        client = self._client(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(ResolutionServiceError):
            asyncio.run(client.search("warfarin"))
