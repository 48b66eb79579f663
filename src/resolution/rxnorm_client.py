"""
DDI Evidence Mining Engine - RxNorm Client
Sprint 2: RxNav REST lookups for drug identifiers
"""
import logging
from typing import Dict, List, Optional, Any

import httpx

from config.settings import RXNAV_BASE_URL, HTTP_USER_AGENT, HTTP_TIMEOUT_SECONDS
from src.core.errors import ResolutionServiceError

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class RxNormClient:
    """
    Thin async client over the RxNav drugs endpoint.

    search() returns a flat list of {"id", "name", "term_type"} dicts in the
    order RxNav reports them.
    """

    def __init__(
        self,
        base_url: str = RXNAV_BASE_URL,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.http_client = http_client or httpx.AsyncClient(
            timeout=HTTP_TIMEOUT_SECONDS,
            headers={"User-Agent": HTTP_USER_AGENT}
        )

    async def search(self, name: str) -> List[Dict[str, Any]]:
        try:
            response = await self.http_client.get(
                f"{self.base_url}/drugs.json",
                params={"name": name}
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise ResolutionServiceError(f"RxNav lookup failed for {name}: {e}") from e

        return self.parse_drugs_response(payload)

    @staticmethod
    def parse_drugs_response(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
        results = []
        groups = (payload or {}).get("drugGroup", {}).get("conceptGroup") or []
        for group in groups:
            for concept in group.get("conceptProperties") or []:
                if not concept.get("rxcui"):
                    continue
                results.append({
                    "id": concept["rxcui"],
                    "name": concept.get("name", ""),
                    "term_type": concept.get("tty") or group.get("tty", ""),
                })
        return results

    async def close(self):
        await self.http_client.aclose()
