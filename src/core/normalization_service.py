"""
DDI Evidence Mining Engine - Normalization Service
Sprint 5: Standardize -> resolve -> group -> merge -> score -> validate -> filter
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Dict, Optional, Any, Union, Iterable

from src.core.errors import UnknownSourceTypeError
from src.core.models import EvidenceRecord, MergedEvidenceRecord, RejectedRecord
from src.core.tables import NormalizationTables, get_tables
from src.normalization.standardizer import EvidenceStandardizer
from src.normalization.grouper import group
from src.normalization.merger import merge_groups
from src.normalization.scoring import QualityScorer, get_scorer
from src.normalization.quality_filter import EvidenceValidator, QualityFilter, QualityFilterOptions
from src.normalization.report import NormalizationReport, generate_report

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@dataclass
class NormalizationResult:
    accepted: List[MergedEvidenceRecord] = field(default_factory=list)
    rejected: List[RejectedRecord] = field(default_factory=list)
    report: Optional[NormalizationReport] = None


class NormalizationService:
    """
    Turns raw evidence (records or loosely shaped dicts) into the accepted
    set of merged, scored records keyed by drug pair.

    Data problems never raise: every dropped record ends up in rejected with
    the stage that dropped it. Malformed options and unknown source types
    are caller errors and do raise.
    """

    def __init__(
        self,
        resolver=None,
        tables: Optional[NormalizationTables] = None,
        scorer: Optional[QualityScorer] = None,
        filter_options: Optional[QualityFilterOptions] = None
    ):
        self.resolver = resolver
        self.tables = tables or get_tables()
        self.standardizer = EvidenceStandardizer(self.tables)
        self.scorer = scorer or get_scorer()
        self.validator = EvidenceValidator()
        self.filter_options = filter_options or QualityFilterOptions()
        logger.info("Normalization Service initialized")

    def _coerce(self, raw: Union[EvidenceRecord, Dict[str, Any]]) -> EvidenceRecord:
        if isinstance(raw, EvidenceRecord):
            return raw
        return EvidenceRecord.from_dict(raw, self.tables)

    def _load_all(self, raw_records: Iterable[Union[EvidenceRecord, Dict[str, Any]]],
                  rejected: List[RejectedRecord]) -> List[EvidenceRecord]:
        """Load raw inputs; an unknown source type raises, any other bad row is rejected"""
        records = []
        for raw in raw_records:
            try:
                records.append(self._coerce(raw))
            except UnknownSourceTypeError:
                raise
            except Exception as e:
                logger.warning(f"Could not load raw evidence record: {e}")
                rejected.append(RejectedRecord(
                    record=raw, reason=f"unreadable record: {e}", stage="standardization"))
        return records

    def _standardize_all(self, records: List[EvidenceRecord],
                         rejected: List[RejectedRecord]) -> List[EvidenceRecord]:
        standardized = []
        for record in records:
            try:
                result = self.standardizer.standardize(record)
            except Exception as e:
                logger.warning(f"Error standardizing evidence record {record.source_id}: {e}")
                result = None
                reason = f"standardization error: {e}"
            else:
                reason = "failed structural check after standardization"
            if result is None:
                rejected.append(RejectedRecord(record=record, reason=reason, stage="standardization"))
            else:
                standardized.append(result)
        return standardized

    async def _resolve_all(self, records: List[EvidenceRecord],
                           rejected: List[RejectedRecord]) -> List[EvidenceRecord]:
        if self.resolver is not None:
            await asyncio.gather(*(self.resolver.resolve_record(r) for r in records))

        resolved = []
        for record in records:
            if record.is_resolvable:
                resolved.append(record)
                continue
            missing = [ref.raw_name for ref in (record.drug_a, record.drug_b) if not ref.resolved_id]
            logger.warning(f"Could not resolve identifiers for {', '.join(missing)}")
            rejected.append(RejectedRecord(
                record=record,
                reason=f"unresolved drug name(s): {', '.join(missing)}",
                stage="resolution",
            ))
        return resolved

    async def normalize(
        self,
        raw_records: Iterable[Union[EvidenceRecord, Dict[str, Any]]],
        filter_options: Union[QualityFilterOptions, Dict, None] = None
    ) -> NormalizationResult:
        quality_filter = QualityFilter(filter_options or self.filter_options)

        rejected: List[RejectedRecord] = []
        records = self._load_all(raw_records, rejected)
        original_count = len(records) + len(rejected)
        logger.info(f"Normalizing {original_count} evidence records")

        standardized = self._standardize_all(records, rejected)

        # Grouping needs every record resolved first
        resolved = await self._resolve_all(standardized, rejected)

        groups = group(resolved)
        merged, failures = merge_groups(groups, self.scorer)
        for key, reason in failures.items():
            rejected.extend(
                RejectedRecord(record=r, reason=f"merge failed: {reason}", stage="merge")
                for r in groups[key]
            )
        for record in merged:
            self.scorer.score(record)

        validation = self.validator.validate(merged)
        rejected.extend(validation.invalid)

        filtered = quality_filter.apply(validation.valid)
        rejected.extend(filtered.rejected)

        accepted = sorted(filtered.kept, key=lambda r: r.evidence.composite_score or 0, reverse=True)
        report = generate_report(original_count, accepted, rejected)

        logger.info(f"Normalized to {len(accepted)} unique interactions "
                    f"({len(rejected)} rejected)")
        return NormalizationResult(accepted=accepted, rejected=rejected, report=report)

    def normalize_sync(
        self,
        raw_records: Iterable[Union[EvidenceRecord, Dict[str, Any]]],
        filter_options: Union[QualityFilterOptions, Dict, None] = None
    ) -> NormalizationResult:
        return asyncio.run(self.normalize(raw_records, filter_options))

    def clear_caches(self):
        if self.resolver is not None:
            self.resolver.clear_cache()
        logger.info("Evidence normalization caches cleared")


# Singleton instance
_service: Optional[NormalizationService] = None

def get_normalization_service() -> NormalizationService:
    """Get or create the service backed by the RxNav resolver"""
    global _service
    if _service is None:
        from src.resolution.entity_resolver import EntityResolver
        from src.resolution.rxnorm_client import RxNormClient
        _service = NormalizationService(resolver=EntityResolver(RxNormClient()))
    return _service
