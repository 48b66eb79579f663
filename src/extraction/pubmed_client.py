"""
DDI Evidence Mining Engine - PubMed / PMC Client
Sprint 2: Literature repository access via NCBI E-utilities
"""
import logging
import xml.etree.ElementTree as ET
from typing import Dict, List, Optional, Any

import httpx
from aiolimiter import AsyncLimiter

from config.settings import (
    PUBMED_BASE_URL, NCBI_API_KEY, HTTP_USER_AGENT, HTTP_TIMEOUT_SECONDS,
    PUBMED_REQUESTS_PER_SECOND, PUBMED_KEYED_REQUESTS_PER_SECOND, PUBMED_RATE_PERIOD_SECONDS,
)
from src.core.errors import DocumentRepositoryError
from src.core.models import DocumentMetadata

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class PubMedClient:
    """
    Async E-utilities client.

    search() runs esearch, fetch_metadata() parses a PubMed efetch record and
    fetch_full_text() returns the body sections of a PMC article keyed by
    lower-cased section title. All HTTP and XML failures surface as
    DocumentRepositoryError.

    Every request goes through one AsyncLimiter per client, so drugs mined
    concurrently share the NCBI budget (3 req/s, 10 with an API key).
    """

    def __init__(
        self,
        base_url: str = PUBMED_BASE_URL,
        api_key: str = NCBI_API_KEY,
        http_client: Optional[httpx.AsyncClient] = None,
        limiter: Optional[AsyncLimiter] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        if limiter is None:
            rate = PUBMED_KEYED_REQUESTS_PER_SECOND if api_key else PUBMED_REQUESTS_PER_SECOND
            limiter = AsyncLimiter(rate, PUBMED_RATE_PERIOD_SECONDS)
        self.limiter = limiter
        self.http_client = http_client or httpx.AsyncClient(
            timeout=HTTP_TIMEOUT_SECONDS,
            headers={"User-Agent": HTTP_USER_AGENT}
        )

    def _params(self, **params) -> Dict[str, Any]:
        if self.api_key:
            params["api_key"] = self.api_key
        return params

    async def _get(self, endpoint: str, params: Dict[str, Any]) -> httpx.Response:
        try:
            async with self.limiter:
                response = await self.http_client.get(f"{self.base_url}/{endpoint}", params=params)
            response.raise_for_status()
            return response
        except httpx.HTTPError as e:
            raise DocumentRepositoryError(f"{endpoint} request failed: {e}") from e

    async def search(self, query: str, max_results: int) -> List[str]:
        response = await self._get("esearch.fcgi", self._params(
            db="pubmed",
            term=query,
            retmax=max_results,
            retmode="json",
            sort="relevance",
        ))
        try:
            data = response.json()
        except ValueError as e:
            raise DocumentRepositoryError(f"Malformed esearch response: {e}") from e

        return list(data.get("esearchresult", {}).get("idlist", []))

    async def fetch_metadata(self, doc_id: str) -> Optional[DocumentMetadata]:
        response = await self._get("efetch.fcgi", self._params(
            db="pubmed",
            id=doc_id,
            retmode="xml",
            rettype="abstract",
        ))
        try:
            root = ET.fromstring(response.text)
        except ET.ParseError as e:
            raise DocumentRepositoryError(f"Malformed efetch XML for {doc_id}: {e}") from e

        article = root.find(".//PubmedArticle")
        if article is None:
            return None
        return parse_pubmed_article(article, doc_id)

    async def fetch_full_text(self, pmcid: str) -> Dict[str, str]:
        pmc_id = pmcid if pmcid.upper().startswith("PMC") else f"PMC{pmcid}"
        response = await self._get("efetch.fcgi", self._params(
            db="pmc",
            id=pmc_id,
            retmode="xml",
        ))
        try:
            root = ET.fromstring(response.text)
        except ET.ParseError as e:
            raise DocumentRepositoryError(f"Malformed PMC XML for {pmc_id}: {e}") from e

        return parse_pmc_sections(root)

    async def close(self):
        await self.http_client.aclose()


def _text(elem: Optional[ET.Element]) -> str:
    if elem is None:
        return ""
    return " ".join("".join(elem.itertext()).split())


def parse_pubmed_article(article: ET.Element, doc_id: str = "") -> DocumentMetadata:
    """Pull bibliographic fields out of one <PubmedArticle> element"""
    citation = article.find("MedlineCitation")
    art = citation.find("Article") if citation is not None else None
    if art is None:
        return DocumentMetadata(document_id=doc_id)

    pmid = _text(citation.find("PMID")) or doc_id

    abstract_parts = [_text(t) for t in art.findall("Abstract/AbstractText")]
    abstract = " ".join(p for p in abstract_parts if p)

    authors = []
    for author in art.findall("AuthorList/Author"):
        fore = _text(author.find("ForeName"))
        last = _text(author.find("LastName"))
        name = f"{fore} {last}".strip() or _text(author.find("CollectiveName"))
        if name:
            authors.append(name)

    pub_date = art.find("Journal/JournalIssue/PubDate")
    date_parts = []
    if pub_date is not None:
        for tag in ("Year", "Month", "Day"):
            value = _text(pub_date.find(tag))
            if value:
                date_parts.append(value)
        if not date_parts:
            medline_date = _text(pub_date.find("MedlineDate"))
            if medline_date:
                date_parts.append(medline_date)

    mesh_terms = [
        _text(d) for d in citation.findall("MeshHeadingList/MeshHeading/DescriptorName")
    ]
    pub_types = [_text(p) for p in art.findall("PublicationTypeList/PublicationType")]

    pmcid = None
    doi = None
    for article_id in article.findall("PubmedData/ArticleIdList/ArticleId"):
        id_type = article_id.get("IdType")
        value = _text(article_id)
        if id_type == "pmc" and value:
            pmcid = value
        elif id_type == "doi" and value:
            doi = value

    return DocumentMetadata(
        document_id=pmid,
        title=_text(art.find("ArticleTitle")),
        abstract=abstract,
        authors=authors,
        journal=_text(art.find("Journal/Title")),
        publication_date="-".join(date_parts),
        mesh_terms=[m for m in mesh_terms if m],
        publication_types=[p for p in pub_types if p],
        pmcid=pmcid,
        doi=doi,
    )


def _section_text(sec: ET.Element) -> str:
    parts = [_text(p) for p in sec.findall("p")]
    for sub in sec.findall("sec"):
        parts.append(_section_text(sub))
    return " ".join(p for p in parts if p)


def parse_pmc_sections(root: ET.Element) -> Dict[str, str]:
    """Map lower-cased top-level <sec> titles to their flattened text"""
    sections: Dict[str, str] = {}
    body = root.find(".//article/body")
    if body is None:
        body = root.find(".//body")
    if body is None:
        return sections

    for sec in body.findall("sec"):
        title = _text(sec.find("title")).lower() or "untitled"
        text = _section_text(sec)
        if text:
            sections[title] = text
    return sections
