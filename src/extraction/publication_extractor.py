"""
DDI Evidence Mining Engine - Publication Extractor
Sprint 3: Literature mining for drug-drug interaction evidence

Searches the document repository for interaction literature on a drug,
fetches abstracts (and PMC full text when available) under rate limiting,
and turns each DDI-bearing text unit into provisional evidence records.
"""
import asyncio
import logging
from datetime import datetime
from typing import AsyncIterator, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from config.settings import (
    DEFAULT_MAX_RESULTS, DEFAULT_YEAR_RANGE, FETCH_DELAY_SECONDS,
    CACHE_TTL_DOCUMENTS,
    MIN_TEXT_UNIT_LENGTH, RAW_SNIPPET_LENGTH,
)
from src.core.models import (
    EvidenceRecord, DrugReference, Interaction, EvidenceDetails, Provenance,
    ExtractionMetadata, DocumentMetadata, SourceType,
)
from src.core.tables import NormalizationTables, get_tables, RELEVANT_SECTIONS
from src.extraction.bulk import BatchOptions, BulkExtractionResult, run_batches
from src.extraction.cache import TTLCache
from src.extraction import lexical

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class ExtractionOptions(BaseModel):
    """Per-drug literature search options"""
    max_results: int = Field(default=DEFAULT_MAX_RESULTS, ge=1, le=10000)
    year_range_years: int = Field(default=DEFAULT_YEAR_RANGE, ge=0, le=100)
    include_full_text: bool = True


class BulkExtractionOptions(ExtractionOptions, BatchOptions):
    pass


def relevant_sections(sections: Dict[str, str]) -> Dict[str, str]:
    """Keep full-text sections whose title suggests DDI content"""
    return {
        name: text for name, text in sections.items()
        if any(marker in name.lower() for marker in RELEVANT_SECTIONS)
    }


class PublicationExtractor:
    """
    Literature extractor over a document repository.

    The repository needs search(query, max_results), fetch_metadata(doc_id)
    and fetch_full_text(pmcid) coroutines; PubMedClient is the production
    implementation.
    """

    METHOD = "publication_text_mining"

    def __init__(
        self,
        repository,
        cache: Optional[TTLCache] = None,
        tables: Optional[NormalizationTables] = None,
        fetch_delay_seconds: float = FETCH_DELAY_SECONDS
    ):
        self.repository = repository
        self.cache = cache if cache is not None else TTLCache(CACHE_TTL_DOCUMENTS)
        self.tables = tables or get_tables()
        self.fetch_delay_seconds = fetch_delay_seconds

    # ==================== Repository access ====================

    def build_query(self, drug_name: str, options: ExtractionOptions,
                    current_year: Optional[int] = None) -> str:
        end_year = current_year or datetime.now().year
        start_year = end_year - options.year_range_years
        keywords = " OR ".join(f'"{k}"' for k in self.tables.ddi_keywords)
        return (f"({drug_name}[tiab] OR {drug_name}[mesh]) AND ({keywords}) "
                f"AND {start_year}:{end_year}[pdat]")

    async def _search(self, query: str, max_results: int) -> List[str]:
        key = ("search", query, max_results)
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        doc_ids = await self.repository.search(query, max_results)
        self.cache.set(key, doc_ids)
        return doc_ids

    async def _metadata(self, doc_id: str) -> Optional[DocumentMetadata]:
        key = ("metadata", doc_id)
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        metadata = await self.repository.fetch_metadata(doc_id)
        if metadata is not None:
            self.cache.set(key, metadata)
        return metadata

    async def _full_text(self, pmcid: str) -> Dict[str, str]:
        key = ("full_text", pmcid)
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        sections = await self.repository.fetch_full_text(pmcid)
        self.cache.set(key, sections)
        return sections

    # ==================== Extraction ====================

    def extract_from_text(
        self,
        drug_name: str,
        text: str,
        metadata: DocumentMetadata,
        section: str
    ) -> List[EvidenceRecord]:
        """Run lexical extraction over one text unit"""
        if not text or len(text) < MIN_TEXT_UNIT_LENGTH:
            return []
        if not lexical.contains_ddi_content(text, self.tables.ddi_keywords):
            return []

        mentions = lexical.find_drug_mentions(text, self.tables)
        if not mentions:
            return []

        enzymes = lexical.find_enzymes(text)
        mechanism = lexical.extract_mechanism(text, enzymes)
        pk = lexical.extract_pharmacokinetics(text)
        study_type = lexical.determine_study_type(text, metadata.publication_types, self.tables)
        severity = lexical.determine_severity(text)

        evidence_kwargs = dict(
            level=lexical.determine_evidence_level(study_type, metadata.journal, self.tables),
            study_type=study_type,
            confidence=lexical.publication_confidence(
                text, mechanism, study_type, metadata.journal, pk is not None, self.tables),
            population_size=lexical.extract_population_size(text),
            statistical_significance=lexical.extract_statistical_significance(text),
            context=section,
        )
        interaction_kwargs = dict(
            mechanism=mechanism,
            effect=lexical.extract_effect(text),
            severity=severity,
            clinical_significance=lexical.extract_clinical_significance(text),
            interaction_type=lexical.classify_interaction_type(mechanism),
            management=lexical.extract_management(text),
        )
        text_conf = lexical.text_confidence(text, mechanism, study_type, enzymes)

        records = []
        primary = drug_name.strip().lower()
        for partner in mentions:
            if partner == primary:
                continue
            records.append(EvidenceRecord(
                source_type=SourceType.PUBLICATION,
                source_id=metadata.document_id,
                drug_a=DrugReference(raw_name=drug_name),
                drug_b=DrugReference(raw_name=partner),
                interaction=Interaction(pathways=set(enzymes), **interaction_kwargs),
                evidence=EvidenceDetails(**evidence_kwargs),
                pharmacokinetics=pk,
                provenance=Provenance(
                    title=metadata.title,
                    authors=list(metadata.authors),
                    publication_date=metadata.publication_date,
                    journal=metadata.journal,
                    doi=metadata.doi,
                    url=f"https://pubmed.ncbi.nlm.nih.gov/{metadata.document_id}/",
                    raw_snippet=text[:RAW_SNIPPET_LENGTH],
                    section=section,
                ),
                extraction_metadata=ExtractionMetadata(
                    method=self.METHOD,
                    text_confidence=text_conf,
                ),
            ))

        return records

    async def extract_from_document(self, drug_name: str, doc_id: str,
                                    include_full_text: bool = True) -> List[EvidenceRecord]:
        metadata = await self._metadata(doc_id)
        if metadata is None:
            return []

        records = self.extract_from_text(drug_name, metadata.abstract, metadata, "abstract")

        if include_full_text and metadata.pmcid:
            await asyncio.sleep(self.fetch_delay_seconds)
            try:
                sections = await self._full_text(metadata.pmcid)
            except Exception as e:
                logger.warning(f"Could not fetch full text for {metadata.pmcid}: {e}")
                sections = {}
            for name, text in relevant_sections(sections).items():
                records.extend(self.extract_from_text(drug_name, text, metadata, name))

        return records

    async def iter_evidence_for_drug(
        self,
        drug_name: str,
        options: Optional[ExtractionOptions] = None
    ) -> AsyncIterator[EvidenceRecord]:
        """
        Lazily yield provisional evidence records for one drug.

        A search failure propagates; per-document failures are logged and
        skipped.
        """
        options = options or ExtractionOptions()
        query = self.build_query(drug_name, options)
        doc_ids = await self._search(query, options.max_results)
        logger.info(f"Found {len(doc_ids)} candidate publications for {drug_name}")

        for index, doc_id in enumerate(doc_ids):
            if index:
                await asyncio.sleep(self.fetch_delay_seconds)
            try:
                records = await self.extract_from_document(
                    drug_name, doc_id, options.include_full_text)
            except Exception as e:
                logger.warning(f"Error processing publication {doc_id}: {e}")
                continue
            for record in records:
                yield record

    async def collect_evidence(self, drug_name: str,
                               options: Optional[ExtractionOptions] = None) -> List[EvidenceRecord]:
        """Like extract_for_drug, but a search failure propagates"""
        return [record async for record in self.iter_evidence_for_drug(drug_name, options)]

    async def extract_for_drug(
        self,
        drug_name: str,
        options: Union[ExtractionOptions, Dict, None] = None
    ) -> List[EvidenceRecord]:
        """Collect all evidence for one drug; never raises for repository failures"""
        if isinstance(options, dict):
            options = ExtractionOptions(**options)
        options = options or ExtractionOptions()

        records: List[EvidenceRecord] = []
        try:
            async for record in self.iter_evidence_for_drug(drug_name, options):
                records.append(record)
        except Exception as e:
            logger.error(f"Error extracting publication evidence for {drug_name}: {e}")

        logger.info(f"Extracted {len(records)} publication evidence records for {drug_name}")
        return records

    async def bulk_extract(
        self,
        drug_names: List[str],
        options: Union[BulkExtractionOptions, Dict, None] = None,
        cancel_event: Optional[asyncio.Event] = None
    ) -> BulkExtractionResult:
        """
        Extract for many drugs in fixed-size concurrent batches.

        A failing drug is recorded in failures and never stops the rest of
        its batch or later batches. Setting cancel_event stops the run before
        the next batch starts.
        """
        if isinstance(options, dict):
            options = BulkExtractionOptions(**options)
        options = options or BulkExtractionOptions()

        return await run_batches(
            lambda drug: self.collect_evidence(drug, options),
            drug_names, options, cancel_event, source="publication",
        )

    def clear_cache(self):
        self.cache.clear()

    def cache_stats(self) -> Dict:
        return self.cache.stats()
