"""
DDI Evidence Mining Engine - Entity Resolver
Sprint 2: Drug name to RxNorm identifier mapping
"""
import asyncio
import logging
from typing import Dict, List, Optional, Any

from src.core.models import EvidenceRecord

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

INGREDIENT_TERM_TYPE = "IN"


class EntityResolver:
    """
    Resolve free-text drug names to canonical identifiers (RXCUI).

    The cache lives as long as the resolver and stores misses as None so an
    unmappable name is looked up once per run. Concurrent lookups of the same
    name wait on a per-name lock and share the first result.
    """

    def __init__(self, service):
        self.service = service
        self._cache: Dict[str, Optional[str]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self.lookups = 0

    @staticmethod
    def cache_key(name: str) -> str:
        return (name or "").strip().lower()

    async def resolve(self, name: str) -> Optional[str]:
        """Return the identifier for a drug name, or None if it cannot be mapped"""
        key = self.cache_key(name)
        if not key:
            return None
        if key in self._cache:
            return self._cache[key]

        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            if key in self._cache:
                return self._cache[key]

            identifier = await self._lookup(key)
            self._cache[key] = identifier
            return identifier

    async def _lookup(self, key: str) -> Optional[str]:
        self.lookups += 1
        try:
            results = await self.service.search(key)
        except Exception as e:
            logger.warning(f"Failed to resolve identifier for {key}: {e}")
            return None

        return self.select_identifier(results)

    @staticmethod
    def select_identifier(results: List[Dict[str, Any]]) -> Optional[str]:
        """Prefer an ingredient-level concept, else the first result"""
        if not results:
            return None
        for result in results:
            if result.get("term_type") == INGREDIENT_TERM_TYPE and result.get("id"):
                return str(result["id"])
        first = results[0].get("id")
        return str(first) if first else None

    async def resolve_record(self, record: EvidenceRecord) -> EvidenceRecord:
        """Fill in any missing resolved ids on a record (in place)"""
        if not record.drug_a.resolved_id:
            record.drug_a.resolved_id = await self.resolve(record.drug_a.raw_name)
        if not record.drug_b.resolved_id:
            record.drug_b.resolved_id = await self.resolve(record.drug_b.raw_name)
        return record

    def clear_cache(self) -> None:
        self._cache.clear()
        self._locks.clear()
        logger.info("Entity resolver cache cleared")

    def cache_stats(self) -> Dict[str, int]:
        return {
            "size": len(self._cache),
            "unresolved": sum(1 for v in self._cache.values() if v is None),
            "lookups": self.lookups,
        }
