"""
DDI Evidence Mining Engine - Clinical Trial Extractor
Sprint 3: Interaction evidence from ClinicalTrials.gov protocols

Eligibility criteria are the richest source: a partner drug listed under
exclusion criteria is a prohibited co-medication for the studied drug.
"""
import asyncio
import logging
import re
from typing import Dict, List, Optional, Any, Union

import httpx
from pydantic import BaseModel, Field

from config.settings import (
    CLINICAL_TRIALS_URL, HTTP_USER_AGENT, HTTP_TIMEOUT_SECONDS,
    DEFAULT_TRIAL_MAX_RESULTS, CACHE_TTL_TRIALS, TRIAL_FETCH_DELAY_SECONDS,
    TRIAL_CONFIDENCE_WEIGHTS, TEXT_CONFIDENCE_MIN_LENGTH, MIN_TRIAL_TEXT_LENGTH,
    RAW_SNIPPET_LENGTH,
)
from src.core.errors import DocumentRepositoryError
from src.core.models import (
    EvidenceRecord, DrugReference, Interaction, EvidenceDetails, Provenance,
    ExtractionMetadata, SourceType, Severity, EvidenceLevel, StudyType,
)
from src.core.tables import NormalizationTables, get_tables, TRIAL_SEVERITY_KEYWORDS
from src.extraction.bulk import BatchOptions, BulkExtractionResult, run_batches
from src.extraction.cache import TTLCache
from src.extraction import lexical

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

INCLUSION_HEADER_RE = re.compile(r"inclusion\s+criteria", re.IGNORECASE)
EXCLUSION_HEADER_RE = re.compile(r"exclusion\s+criteria", re.IGNORECASE)
CRITERION_END_RE = re.compile(r"[.;]$")
MAX_CRITERION_LINES = 3

ACTIVE_STATUSES = ["RECRUITING", "ACTIVE_NOT_RECRUITING"]
MAX_PAGE_SIZE = 100


class TrialExtractionOptions(BaseModel):
    max_results: int = Field(default=DEFAULT_TRIAL_MAX_RESULTS, ge=1, le=1000)
    include_completed: bool = True


class BulkTrialExtractionOptions(TrialExtractionOptions, BatchOptions):
    pass


class ClinicalTrialsClient:
    """ClinicalTrials.gov v2 study search and detail lookup"""

    def __init__(
        self,
        base_url: str = CLINICAL_TRIALS_URL,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.http_client = http_client or httpx.AsyncClient(
            timeout=HTTP_TIMEOUT_SECONDS,
            headers={"User-Agent": HTTP_USER_AGENT}
        )

    async def search_studies(self, name: str, limit: int,
                             include_completed: bool = True) -> List[Dict[str, Any]]:
        statuses = ACTIVE_STATUSES + (["COMPLETED"] if include_completed else [])
        params = {
            "query.intr": name,
            "filter.overallStatus": ",".join(statuses),
            "filter.studyType": "INTERVENTIONAL",
            "pageSize": min(limit, MAX_PAGE_SIZE),
            "format": "json",
        }
        try:
            response = await self.http_client.get(self.base_url, params=params)
            response.raise_for_status()
            return list(response.json().get("studies", []))
        except (httpx.HTTPError, ValueError) as e:
            raise DocumentRepositoryError(f"ClinicalTrials.gov search failed for {name}: {e}") from e

    async def fetch_study(self, nct_id: str) -> Dict[str, Any]:
        try:
            response = await self.http_client.get(f"{self.base_url}/{nct_id}",
                                                  params={"format": "json"})
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise DocumentRepositoryError(f"ClinicalTrials.gov lookup failed for {nct_id}: {e}") from e
        return data.get("protocolSection") or data

    async def close(self):
        await self.http_client.aclose()


# ==================== Protocol Rules ====================

def nct_id_of(study: Dict[str, Any]) -> Optional[str]:
    """NCT id from a search hit or a protocol section"""
    protocol = study.get("protocolSection") or study
    return (protocol.get("identificationModule") or {}).get("nctId") or study.get("nctId")


def parse_criteria_sections(text: str) -> Dict[str, List[str]]:
    """
    Split eligibility criteria into inclusion and exclusion items.

    Text before any header counts as inclusion. An item closes on a line
    ending in "." or ";", or once it spans more than three lines.
    """
    sections: Dict[str, List[str]] = {"inclusion": [], "exclusion": []}
    current = "inclusion"
    group: List[str] = []

    for line in (text or "").splitlines():
        stripped = line.strip()
        if not stripped:
            continue

        if INCLUSION_HEADER_RE.search(stripped) or EXCLUSION_HEADER_RE.search(stripped):
            if group:
                sections[current].append(" ".join(group))
                group = []
            current = "inclusion" if INCLUSION_HEADER_RE.search(stripped) else "exclusion"
            continue

        group.append(stripped)
        if CRITERION_END_RE.search(stripped) or len(group) > MAX_CRITERION_LINES:
            sections[current].append(" ".join(group))
            group = []

    if group:
        sections[current].append(" ".join(group))
    return sections


def trial_severity(text: str, context: str) -> Severity:
    lower = (text or "").lower()
    for level, words in TRIAL_SEVERITY_KEYWORDS:
        if any(w in lower for w in words):
            return Severity(level)
    if context == "exclusion_criteria" or "exclusion" in lower:
        return Severity.MAJOR
    return Severity.MODERATE


def trial_evidence_level(context: str, severity: Severity) -> EvidenceLevel:
    if context == "exclusion_criteria":
        return EvidenceLevel.HIGH if severity == Severity.CONTRAINDICATED else EvidenceLevel.MEDIUM
    return EvidenceLevel.LOW


def trial_study_type(context: str, study: Dict[str, Any]) -> str:
    if context == "exclusion_criteria":
        return StudyType.EXCLUSION_CRITERIA.value

    identification = study.get("identificationModule") or {}
    title = f"{identification.get('briefTitle', '')} {identification.get('officialTitle', '')}"
    if "interaction" in title.lower():
        return StudyType.DEDICATED_DDI_STUDY.value

    design = study.get("designModule") or {}
    if (design.get("designInfo") or {}).get("allocation") == "RANDOMIZED":
        return StudyType.RCT.value
    return StudyType.UNKNOWN.value


def trial_confidence(text: str, mechanism: str, severity: Severity,
                     enzymes: Optional[List[str]] = None) -> int:
    w = TRIAL_CONFIDENCE_WEIGHTS
    confidence = w["base"]
    if lexical.is_mechanism_known(mechanism):
        confidence += w["mechanism"]
    if severity != Severity.MODERATE:
        confidence += w["non_moderate"]
    if len(text or "") > TEXT_CONFIDENCE_MIN_LENGTH:
        confidence += w["text_length"]
    if enzymes is None:
        enzymes = lexical.find_enzymes(text)
    if enzymes:
        confidence += w["enzymes"]
    return min(confidence, 100)


class ClinicalTrialExtractor:
    """
    Clinical trial extractor.

    Protocol text (eligibility criteria, intervention and study descriptions)
    runs through the shared lexical rules; severity, evidence level and study
    type depend on where in the protocol the mention sits.
    """

    METHOD = "clinical_trials_text_mining"

    def __init__(
        self,
        repository,
        cache: Optional[TTLCache] = None,
        tables: Optional[NormalizationTables] = None,
        fetch_delay_seconds: float = TRIAL_FETCH_DELAY_SECONDS
    ):
        self.repository = repository
        self.cache = cache if cache is not None else TTLCache(CACHE_TTL_TRIALS)
        self.tables = tables or get_tables()
        self.fetch_delay_seconds = fetch_delay_seconds

    async def _study(self, nct_id: str) -> Dict[str, Any]:
        key = ("study", nct_id)
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        study = await self.repository.fetch_study(nct_id)
        self.cache.set(key, study)
        return study

    # ==================== Extraction ====================

    def extract_from_text(self, drug_name: str, text: str, study: Dict[str, Any],
                          context: str) -> List[EvidenceRecord]:
        if not text or len(text) < MIN_TRIAL_TEXT_LENGTH:
            return []

        primary = drug_name.strip().lower()
        partners = [m for m in lexical.find_drug_mentions(text, self.tables) if m != primary]
        if not partners:
            return []

        identification = study.get("identificationModule") or {}
        status = study.get("statusModule") or {}
        enrollment = (study.get("designModule") or {}).get("enrollmentInfo") or {}
        nct_id = identification.get("nctId") or "unknown"

        enzymes = lexical.find_enzymes(text)
        mechanism = lexical.extract_mechanism(text, enzymes)
        severity = trial_severity(text, context)
        confidence = trial_confidence(text, mechanism, severity, enzymes)

        records = []
        for partner in partners:
            records.append(EvidenceRecord(
                source_type=SourceType.CLINICAL_TRIAL,
                source_id=nct_id,
                drug_a=DrugReference(raw_name=drug_name),
                drug_b=DrugReference(raw_name=partner),
                interaction=Interaction(
                    mechanism=mechanism,
                    pathways=set(enzymes),
                    effect=lexical.extract_effect(text),
                    severity=severity,
                    interaction_type=lexical.classify_interaction_type(mechanism),
                    management=lexical.extract_management(text),
                ),
                evidence=EvidenceDetails(
                    level=trial_evidence_level(context, severity),
                    study_type=trial_study_type(context, study),
                    confidence=confidence,
                    population_size=enrollment.get("count"),
                    context=context,
                ),
                pharmacokinetics=lexical.extract_pharmacokinetics(text),
                provenance=Provenance(
                    title=identification.get("briefTitle", ""),
                    publication_date=(status.get("startDateStruct") or {}).get("date", ""),
                    url=f"https://clinicaltrials.gov/study/{nct_id}",
                    raw_snippet=text[:RAW_SNIPPET_LENGTH],
                    section=context,
                ),
                extraction_metadata=ExtractionMetadata(
                    method=self.METHOD,
                    text_confidence=confidence,
                ),
            ))
        return records

    def extract_from_study(self, drug_name: str, study: Dict[str, Any]) -> List[EvidenceRecord]:
        eligibility = (study.get("eligibilityModule") or {}).get("eligibilityCriteria") or ""
        description = study.get("descriptionModule") or {}
        summaries = [description.get("detailedDescription") or "",
                     description.get("briefSummary") or ""]

        # Studies that never mention co-medication are skipped whole
        screen_text = " ".join([eligibility] + summaries)
        if not lexical.contains_ddi_content(screen_text, self.tables.trial_ddi_keywords):
            return []

        records: List[EvidenceRecord] = []
        criteria = parse_criteria_sections(eligibility)
        for item in criteria["exclusion"]:
            records.extend(self.extract_from_text(drug_name, item, study, "exclusion_criteria"))
        for item in criteria["inclusion"]:
            records.extend(self.extract_from_text(drug_name, item, study, "inclusion_criteria"))

        interventions = (study.get("armsInterventionsModule") or {}).get("interventions") or []
        for intervention in interventions:
            text = f"{intervention.get('name', '')} {intervention.get('description', '')}".strip()
            records.extend(self.extract_from_text(drug_name, text, study, "intervention_description"))

        for text in summaries:
            records.extend(self.extract_from_text(drug_name, text, study, "study_description"))

        return records

    async def collect_evidence(
        self,
        drug_name: str,
        options: Optional[TrialExtractionOptions] = None
    ) -> List[EvidenceRecord]:
        """Evidence from the drug's trials; a search failure propagates"""
        options = options or TrialExtractionOptions()

        key = ("trials", drug_name.strip().lower(), options.max_results, options.include_completed)
        cached = self.cache.get(key)
        if cached is not None:
            return [r.copy() for r in cached]

        hits = await self.repository.search_studies(
            drug_name, options.max_results, options.include_completed)
        nct_ids = [n for n in (nct_id_of(hit) for hit in hits[:options.max_results]) if n]
        logger.info(f"Found {len(nct_ids)} candidate trials for {drug_name}")

        records: List[EvidenceRecord] = []
        for index, nct_id in enumerate(nct_ids):
            if index:
                await asyncio.sleep(self.fetch_delay_seconds)
            try:
                study = await self._study(nct_id)
                records.extend(self.extract_from_study(drug_name, study))
            except Exception as e:
                logger.warning(f"Error processing study {nct_id}: {e}")

        self.cache.set(key, records)
        logger.info(f"Found {len(records)} clinical trial evidence records for {drug_name}")
        return [r.copy() for r in records]

    async def extract_for_drug(
        self,
        drug_name: str,
        options: Union[TrialExtractionOptions, Dict, None] = None
    ) -> List[EvidenceRecord]:
        """Trial evidence for one drug; repository failures yield an empty list"""
        if isinstance(options, dict):
            options = TrialExtractionOptions(**options)
        try:
            return await self.collect_evidence(drug_name, options)
        except Exception as e:
            logger.error(f"Error searching trials for {drug_name}: {e}")
            return []

    async def bulk_extract(
        self,
        drug_names: List[str],
        options: Union[BulkTrialExtractionOptions, Dict, None] = None,
        cancel_event: Optional[asyncio.Event] = None
    ) -> BulkExtractionResult:
        if isinstance(options, dict):
            options = BulkTrialExtractionOptions(**options)
        options = options or BulkTrialExtractionOptions()

        return await run_batches(
            lambda drug: self.collect_evidence(drug, options),
            drug_names, options, cancel_event, source="clinical trial",
        )

    def clear_cache(self):
        self.cache.clear()

    def cache_stats(self) -> Dict:
        return self.cache.stats()
