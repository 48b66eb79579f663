"""
DDI Evidence Mining Engine - Mining Orchestrator
Sprint 5: End-to-end mining over a drug list

Runs the enabled extractors for each drug in rate-limited batches, then
normalizes everything collected into the accepted evidence set.
"""
import asyncio
import json
import logging
from collections import Counter
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import List, Dict, Optional, Any, Callable

from pydantic import BaseModel, Field

from config.settings import (
    BULK_BATCH_SIZE, BULK_BATCH_DELAY_SECONDS,
    DEFAULT_MAX_RESULTS, DEFAULT_YEAR_RANGE, DEFAULT_LABEL_MAX_RESULTS,
    DEFAULT_TRIAL_MAX_RESULTS,
    MIN_COMPOSITE_SCORE, MIN_CONFIDENCE,
    ENABLE_PUBLICATIONS, ENABLE_REGULATORY_LABELS, ENABLE_CLINICAL_TRIALS,
    ENABLE_NORMALIZATION,
    LOG_LEVEL, LOG_FORMAT,
)
from src.core.export import export_records
from src.core.models import EvidenceRecord
from src.core.normalization_service import (
    NormalizationService, NormalizationResult, get_normalization_service,
)
from src.extraction.label_extractor import LabelExtractionOptions
from src.extraction.publication_extractor import ExtractionOptions
from src.extraction.trial_extractor import TrialExtractionOptions
from src.normalization.quality_filter import QualityFilterOptions

logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
logger = logging.getLogger(__name__)


class MiningConfig(BaseModel):
    """Run configuration; invalid values raise (pydantic ValidationError is a ValueError)"""
    enable_publications: bool = ENABLE_PUBLICATIONS
    enable_regulatory_labels: bool = ENABLE_REGULATORY_LABELS
    enable_clinical_trials: bool = ENABLE_CLINICAL_TRIALS
    enable_normalization: bool = ENABLE_NORMALIZATION

    # Rate limiting and batching
    batch_size: int = Field(default=BULK_BATCH_SIZE, ge=1, le=20)
    batch_delay_seconds: float = Field(default=BULK_BATCH_DELAY_SECONDS, ge=0)

    # Per-source limits
    max_publications_per_drug: int = Field(default=DEFAULT_MAX_RESULTS, ge=1, le=10000)
    max_labels_per_drug: int = Field(default=DEFAULT_LABEL_MAX_RESULTS, ge=1, le=1000)
    max_trials_per_drug: int = Field(default=DEFAULT_TRIAL_MAX_RESULTS, ge=1, le=1000)
    include_completed_trials: bool = True
    publication_year_range: int = Field(default=DEFAULT_YEAR_RANGE, ge=0, le=100)
    include_full_text: bool = True

    # Quality filters
    min_composite_score: int = Field(default=MIN_COMPOSITE_SCORE, ge=0, le=100)
    min_confidence: int = Field(default=MIN_CONFIDENCE, ge=0, le=100)
    require_mechanism: bool = False
    require_pathways: bool = False

    def filter_options(self) -> QualityFilterOptions:
        return QualityFilterOptions(
            min_composite_score=self.min_composite_score,
            min_confidence=self.min_confidence,
            require_mechanism=self.require_mechanism,
            require_pathways=self.require_pathways,
        )


@dataclass
class MiningProgress:
    phase: str = "idle"  # idle, extracting, normalizing, completed, cancelled
    completed: int = 0
    total: int = 0
    current_drug: Optional[str] = None
    extracted_evidence: int = 0
    normalized_evidence: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class MiningResult:
    raw_evidence: List[EvidenceRecord] = field(default_factory=list)
    normalization: Optional[NormalizationResult] = None
    extraction_report: Dict[str, Any] = field(default_factory=dict)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    cancelled: bool = False

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at and self.finished_at:
            return (self.finished_at - self.started_at).total_seconds()
        return None


def build_extraction_report(drug_names: List[str], evidence: List[EvidenceRecord],
                            errors: List[Dict[str, Any]]) -> Dict[str, Any]:
    drugs = len(drug_names)
    failed_drugs = {e["drug"] for e in errors}

    coverage = Counter()
    for record in evidence:
        coverage[record.drug_a.raw_name] += 1
        coverage[record.drug_b.raw_name] += 1

    return {
        "summary": {
            "drugs_processed": drugs,
            "total_evidence": len(evidence),
            "average_evidence_per_drug": round(len(evidence) / drugs) if drugs else 0,
            "success_rate": round((1 - len(failed_drugs) / drugs) * 100) if drugs else 0,
        },
        "sources": dict(Counter(r.source_type.value for r in evidence)),
        "coverage": {
            "drugs_with_evidence": len(coverage),
            "top_drugs": [
                {"drug": drug, "evidence_count": count}
                for drug, count in coverage.most_common(10)
            ],
        },
        "errors": [dict(e) for e in errors],
    }


class MiningOrchestrator:
    """
    Coordinates extraction and normalization for a list of drugs.

    Extractors and the normalization service are injected; any extractor
    left as None is skipped regardless of the config toggles.
    """

    def __init__(
        self,
        normalization_service: Optional[NormalizationService] = None,
        publication_extractor=None,
        label_extractor=None,
        trial_extractor=None,
        config: Optional[MiningConfig] = None,
        progress_callback: Optional[Callable[[MiningProgress], None]] = None
    ):
        self.normalization_service = normalization_service or get_normalization_service()
        self.publication_extractor = publication_extractor
        self.label_extractor = label_extractor
        self.trial_extractor = trial_extractor
        self.config = config or MiningConfig()
        self.progress_callback = progress_callback
        self.progress = MiningProgress()
        self.last_result: Optional[MiningResult] = None
        logger.info("DDI Mining Orchestrator initialized")

    def update_config(self, **changes) -> MiningConfig:
        self.config = MiningConfig(**{**self.config.model_dump(), **changes})
        logger.info("DDI mining configuration updated")
        return self.config

    def _update_progress(self, **changes):
        for key, value in changes.items():
            setattr(self.progress, key, value)
        if self.progress_callback:
            self.progress_callback(MiningProgress(**asdict(self.progress)))

    def _record_error(self, drug: str, message: str):
        logger.warning(f"Extraction failed for {drug}: {message}")
        self._update_progress(errors=self.progress.errors + [{
            "drug": drug,
            "message": message,
            "timestamp": datetime.now().isoformat(),
        }])

    async def mine_drug(self, drug_name: str) -> List[EvidenceRecord]:
        """Run every enabled extractor for one drug concurrently"""
        cfg = self.config
        tasks = []
        if cfg.enable_publications and self.publication_extractor is not None:
            tasks.append(("publication", self.publication_extractor.collect_evidence(
                drug_name, ExtractionOptions(
                    max_results=cfg.max_publications_per_drug,
                    year_range_years=cfg.publication_year_range,
                    include_full_text=cfg.include_full_text,
                ))))
        if cfg.enable_regulatory_labels and self.label_extractor is not None:
            tasks.append(("regulatory_label", self.label_extractor.collect_evidence(
                drug_name, LabelExtractionOptions(max_results=cfg.max_labels_per_drug))))
        if cfg.enable_clinical_trials and self.trial_extractor is not None:
            tasks.append(("clinical_trial", self.trial_extractor.collect_evidence(
                drug_name, TrialExtractionOptions(
                    max_results=cfg.max_trials_per_drug,
                    include_completed=cfg.include_completed_trials,
                ))))

        outcomes = await asyncio.gather(*(t for _, t in tasks), return_exceptions=True)

        evidence: List[EvidenceRecord] = []
        for (source, _), outcome in zip(tasks, outcomes):
            if isinstance(outcome, Exception):
                self._record_error(drug_name, f"{source}: {outcome}")
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                evidence.extend(outcome)

        logger.info(f"Extracted {len(evidence)} evidence entries for {drug_name}")
        return evidence

    async def mine_drugs(
        self,
        drug_names: List[str],
        cancel_event: Optional[asyncio.Event] = None
    ) -> MiningResult:
        """
        Mine a list of drugs in batches, then normalize.

        Setting cancel_event stops the run before the next batch or before
        normalization; what was extracted so far is still returned.
        """
        cfg = self.config
        result = MiningResult(started_at=datetime.now())
        self.progress = MiningProgress()
        self._update_progress(phase="extracting", total=len(drug_names))

        size = cfg.batch_size
        batches = [drug_names[i:i + size] for i in range(0, len(drug_names), size)]

        for index, batch in enumerate(batches):
            if cancel_event is not None and cancel_event.is_set():
                result.cancelled = True
                break

            logger.info(f"Processing batch {index + 1}/{len(batches)}")
            self._update_progress(current_drug=batch[0])
            batch_results = await asyncio.gather(*(self.mine_drug(drug) for drug in batch))
            for drug_evidence in batch_results:
                result.raw_evidence.extend(drug_evidence)

            self._update_progress(
                completed=self.progress.completed + len(batch),
                extracted_evidence=len(result.raw_evidence),
                current_drug=None,
            )

            if index < len(batches) - 1:
                await asyncio.sleep(cfg.batch_delay_seconds)

        if cancel_event is not None and cancel_event.is_set():
            result.cancelled = True

        if cfg.enable_normalization and not result.cancelled:
            self._update_progress(phase="normalizing")
            result.normalization = await self.normalization_service.normalize(
                result.raw_evidence, cfg.filter_options())
            self._update_progress(normalized_evidence=len(result.normalization.accepted))

        result.extraction_report = build_extraction_report(
            drug_names[:self.progress.completed], result.raw_evidence, self.progress.errors)
        result.finished_at = datetime.now()
        self._update_progress(phase="cancelled" if result.cancelled else "completed")

        self.last_result = result
        logger.info(f"Mining completed. Raw evidence: {len(result.raw_evidence)}, "
                    f"Normalized: {self.progress.normalized_evidence}")
        return result

    def export(self, fmt: str = "json") -> str:
        """Export the last run's accepted records (raw evidence when not normalized)"""
        if self.last_result is None:
            raise ValueError("No mining results to export")

        result = self.last_result
        records = result.normalization.accepted if result.normalization else result.raw_evidence

        if fmt.lower() == "json":
            return json.dumps({
                "records": [r.to_dict() for r in records],
                "extraction_report": result.extraction_report,
                "normalization_report": (result.normalization.report.to_dict()
                                         if result.normalization else None),
            }, indent=2, default=str)
        return export_records(records, fmt)

    def reset(self):
        self.progress = MiningProgress()
        self.last_result = None
        logger.info("DDI mining orchestrator reset")

    def clear_caches(self):
        for extractor in (self.publication_extractor, self.label_extractor, self.trial_extractor):
            if extractor is not None:
                extractor.clear_cache()
        self.normalization_service.clear_caches()
        logger.info("All DDI mining caches cleared")

    def cache_stats(self) -> Dict[str, Any]:
        stats = {}
        if self.publication_extractor is not None:
            stats["publications"] = self.publication_extractor.cache_stats()
        if self.label_extractor is not None:
            stats["regulatory"] = self.label_extractor.cache_stats()
        if self.trial_extractor is not None:
            stats["clinical_trials"] = self.trial_extractor.cache_stats()
        resolver = self.normalization_service.resolver
        if resolver is not None:
            stats["resolver"] = resolver.cache_stats()
        return stats


# Singleton instance
_orchestrator: Optional[MiningOrchestrator] = None

def get_mining_orchestrator() -> MiningOrchestrator:
    """Get or create the orchestrator over PubMed, openFDA, ClinicalTrials.gov and RxNav"""
    global _orchestrator
    if _orchestrator is None:
        from src.extraction.label_extractor import OpenFDAClient, RegulatoryLabelExtractor
        from src.extraction.publication_extractor import PublicationExtractor
        from src.extraction.pubmed_client import PubMedClient
        from src.extraction.trial_extractor import ClinicalTrialExtractor, ClinicalTrialsClient
        _orchestrator = MiningOrchestrator(
            normalization_service=get_normalization_service(),
            publication_extractor=PublicationExtractor(PubMedClient()),
            label_extractor=RegulatoryLabelExtractor(OpenFDAClient()),
            trial_extractor=ClinicalTrialExtractor(ClinicalTrialsClient()),
        )
    return _orchestrator
