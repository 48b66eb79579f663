"""
DDI Evidence Mining Engine - Regulatory Label Extractor
Sprint 3: Interaction evidence from FDA prescribing information
"""
import logging
import re
from typing import Dict, List, Optional, Any, Union

import httpx
from pydantic import BaseModel, Field

from config.settings import (
    OPENFDA_LABEL_URL, HTTP_USER_AGENT, HTTP_TIMEOUT_SECONDS,
    DEFAULT_LABEL_MAX_RESULTS, CACHE_TTL_LABELS, RAW_SNIPPET_LENGTH,
    LABEL_CONFIDENCE_WEIGHTS, TEXT_CONFIDENCE_MIN_LENGTH,
)
from src.core.errors import DocumentRepositoryError
from src.core.models import (
    EvidenceRecord, DrugReference, Interaction, EvidenceDetails, Provenance,
    ExtractionMetadata, SourceType, Severity, EvidenceLevel, StudyType,
)
from src.core.tables import (
    NormalizationTables, get_tables, LABEL_SECTIONS, LABEL_SEVERITY_KEYWORDS,
)
from src.extraction.cache import TTLCache
from src.extraction import lexical

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

ENTRY_SPLIT_RE = re.compile(r"\n\n|\.\s+(?=[A-Z])|;\s+(?=[A-Z])")
MIN_ENTRY_LENGTH = 20


class LabelExtractionOptions(BaseModel):
    max_results: int = Field(default=DEFAULT_LABEL_MAX_RESULTS, ge=1, le=1000)


class OpenFDAClient:
    """openFDA drug label search"""

    def __init__(
        self,
        base_url: str = OPENFDA_LABEL_URL,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self.base_url = base_url
        self.http_client = http_client or httpx.AsyncClient(
            timeout=HTTP_TIMEOUT_SECONDS,
            headers={"User-Agent": HTTP_USER_AGENT}
        )

    async def search_labels(self, name: str, limit: int) -> List[Dict[str, Any]]:
        params = {
            "search": f'openfda.generic_name:"{name}" OR openfda.brand_name:"{name}"',
            "limit": limit,
        }
        try:
            response = await self.http_client.get(self.base_url, params=params)
            # openFDA answers 404 when nothing matches
            if response.status_code == 404:
                logger.info(f"No FDA labels found for {name}")
                return []
            response.raise_for_status()
            return list(response.json().get("results", []))
        except (httpx.HTTPError, ValueError) as e:
            raise DocumentRepositoryError(f"openFDA search failed for {name}: {e}") from e

    async def close(self):
        await self.http_client.aclose()


def split_interaction_entries(text: str, keywords: List[str]) -> List[str]:
    """Split section text into DDI-bearing entries; whole text if none stand alone"""
    entries = [
        part.strip() for part in ENTRY_SPLIT_RE.split(text)
        if len(part.strip()) > MIN_ENTRY_LENGTH and lexical.contains_ddi_content(part, keywords)
    ]
    if not entries and lexical.contains_ddi_content(text, keywords):
        entries = [text.strip()]
    return entries


def label_severity(text: str, section: str) -> Severity:
    if section == "contraindications":
        return Severity.CONTRAINDICATED
    if section == "boxed_warning":
        return Severity.MAJOR
    return lexical.determine_severity(text, keywords=LABEL_SEVERITY_KEYWORDS)


def label_evidence_level(section: str, severity: Severity) -> EvidenceLevel:
    if section in ("contraindications", "boxed_warning"):
        return EvidenceLevel.HIGH
    if section == "drug_interactions":
        return EvidenceLevel.HIGH if severity.rank >= Severity.MAJOR.rank else EvidenceLevel.MEDIUM
    if section in ("warnings", "warnings_and_cautions"):
        return EvidenceLevel.MEDIUM
    return EvidenceLevel.LOW


def label_confidence(text: str, mechanism: str, severity: Severity,
                     enzymes: Optional[List[str]] = None) -> int:
    w = LABEL_CONFIDENCE_WEIGHTS
    confidence = w["base"]
    if lexical.is_mechanism_known(mechanism):
        confidence += w["mechanism"]
    if severity.rank >= Severity.MAJOR.rank:
        confidence += w["major"]
    if len(text) > TEXT_CONFIDENCE_MIN_LENGTH:
        confidence += w["text_length"]
    if enzymes is None:
        enzymes = lexical.find_enzymes(text)
    if enzymes:
        confidence += w["enzymes"]
    return min(confidence, 100)


class RegulatoryLabelExtractor:
    """
    Regulatory label extractor.

    Each DDI-relevant label section is split into interaction entries and
    passed through the same lexical rules as literature, with label-specific
    severity and evidence level.
    """

    METHOD = "regulatory_label_parsing"

    def __init__(
        self,
        repository,
        cache: Optional[TTLCache] = None,
        tables: Optional[NormalizationTables] = None
    ):
        self.repository = repository
        self.cache = cache if cache is not None else TTLCache(CACHE_TTL_LABELS)
        self.tables = tables or get_tables()

    def extract_from_section(self, drug_name: str, text: str, section: str,
                             label: Dict[str, Any]) -> List[EvidenceRecord]:
        if not isinstance(text, str) or not text:
            return []

        openfda = label.get("openfda") or {}
        label_id = label.get("set_id") or label.get("id") or "unknown"
        product = (openfda.get("brand_name") or openfda.get("generic_name") or [drug_name])[0]
        primary = drug_name.strip().lower()

        records = []
        for entry in split_interaction_entries(text, self.tables.label_ddi_keywords):
            partners = [m for m in lexical.find_drug_mentions(entry, self.tables) if m != primary]
            if not partners:
                continue

            enzymes = lexical.find_enzymes(entry)
            mechanism = lexical.extract_mechanism(entry, enzymes)
            severity = label_severity(entry, section)
            confidence = label_confidence(entry, mechanism, severity, enzymes)

            for partner in partners:
                records.append(EvidenceRecord(
                    source_type=SourceType.REGULATORY_LABEL,
                    source_id=label_id,
                    drug_a=DrugReference(raw_name=drug_name),
                    drug_b=DrugReference(raw_name=partner),
                    interaction=Interaction(
                        mechanism=mechanism,
                        pathways=set(enzymes),
                        effect=lexical.extract_effect(entry),
                        severity=severity,
                        interaction_type=lexical.classify_interaction_type(mechanism),
                        management=lexical.extract_management(entry),
                    ),
                    evidence=EvidenceDetails(
                        level=label_evidence_level(section, severity),
                        study_type=StudyType.REGULATORY_REVIEW.value,
                        confidence=confidence,
                        context="official_prescribing_information",
                    ),
                    pharmacokinetics=lexical.extract_pharmacokinetics(entry),
                    provenance=Provenance(
                        title=f"{product} Prescribing Information",
                        url=f"https://dailymed.nlm.nih.gov/dailymed/drugInfo.cfm?setid={label_id}",
                        raw_snippet=entry[:RAW_SNIPPET_LENGTH],
                        section=section,
                        regulatory_agency="FDA",
                        publication_date=label.get("effective_time", ""),
                    ),
                    extraction_metadata=ExtractionMetadata(
                        method=self.METHOD,
                        text_confidence=confidence,
                    ),
                ))
        return records

    def extract_from_label(self, drug_name: str, label: Dict[str, Any]) -> List[EvidenceRecord]:
        records = []
        for section in LABEL_SECTIONS:
            content = label.get(section)
            if isinstance(content, str):
                content = [content]
            for text in content or []:
                records.extend(self.extract_from_section(drug_name, text, section, label))
        return records

    async def extract_for_drug(
        self,
        drug_name: str,
        options: Union[LabelExtractionOptions, Dict, None] = None
    ) -> List[EvidenceRecord]:
        """Label evidence for one drug; repository failures yield an empty list"""
        if isinstance(options, dict):
            options = LabelExtractionOptions(**options)
        try:
            return await self.collect_evidence(drug_name, options)
        except Exception as e:
            logger.error(f"Error searching labels for {drug_name}: {e}")
            return []

    async def collect_evidence(
        self,
        drug_name: str,
        options: Optional[LabelExtractionOptions] = None
    ) -> List[EvidenceRecord]:
        """Like extract_for_drug, but a label search failure propagates"""
        options = options or LabelExtractionOptions()

        key = ("labels", drug_name.strip().lower(), options.max_results)
        cached = self.cache.get(key)
        if cached is not None:
            return [r.copy() for r in cached]

        labels = await self.repository.search_labels(drug_name, options.max_results)

        records: List[EvidenceRecord] = []
        for label in labels:
            try:
                records.extend(self.extract_from_label(drug_name, label))
            except Exception as e:
                logger.warning(f"Error processing label {label.get('id', '?')}: {e}")

        self.cache.set(key, records)
        logger.info(f"Found {len(records)} regulatory evidence records for {drug_name}")
        return [r.copy() for r in records]

    def clear_cache(self):
        self.cache.clear()

    def cache_stats(self) -> Dict:
        return self.cache.stats()
