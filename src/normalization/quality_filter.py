"""
DDI Evidence Mining Engine - Validator & Quality Filter
Sprint 4: Structural validation and configurable quality thresholds
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Union, Dict

from pydantic import BaseModel, Field

from config.settings import MIN_COMPOSITE_SCORE, MIN_CONFIDENCE
from src.core.models import (
    EvidenceRecord, RejectedRecord, Severity, EvidenceLevel, SourceType,
)
from src.extraction.lexical import is_mechanism_known

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class QualityFilterOptions(BaseModel):
    min_composite_score: int = Field(default=MIN_COMPOSITE_SCORE, ge=0, le=100)
    min_confidence: int = Field(default=MIN_CONFIDENCE, ge=0, le=100)
    require_mechanism: bool = False
    require_pathways: bool = False


@dataclass
class ValidationOutcome:
    valid: List[EvidenceRecord] = field(default_factory=list)
    invalid: List[RejectedRecord] = field(default_factory=list)


@dataclass
class FilterOutcome:
    kept: List[EvidenceRecord] = field(default_factory=list)
    rejected: List[RejectedRecord] = field(default_factory=list)


class EvidenceValidator:
    """Structural checks on merged records; reports the first failing rule"""

    STAGE = "validation"

    def check(self, record: EvidenceRecord) -> Optional[str]:
        if not record.drug_a.resolved_id or not record.drug_b.resolved_id:
            return "missing resolved drug identifier"
        if not record.interaction.mechanism:
            return "missing mechanism"
        if not isinstance(record.interaction.severity, Severity):
            return f"severity not in enumeration: {record.interaction.severity!r}"
        if not isinstance(record.evidence.level, EvidenceLevel):
            return f"evidence level not in enumeration: {record.evidence.level!r}"
        if not isinstance(record.source_type, SourceType):
            return "missing source type"
        if not record.source_id:
            return "missing source id"
        return None

    def validate(self, records: List[EvidenceRecord]) -> ValidationOutcome:
        outcome = ValidationOutcome()
        for record in records:
            reason = self.check(record)
            if reason:
                outcome.invalid.append(RejectedRecord(record=record, reason=reason, stage=self.STAGE))
            else:
                outcome.valid.append(record)

        if outcome.invalid:
            logger.info(f"Validation rejected {len(outcome.invalid)} of {len(records)} records")
        return outcome


class QualityFilter:
    """
    Threshold filter over scored records.

    Confidence here is the blended value the scorer stores, not the raw
    extractor confidence.
    """

    STAGE = "quality_filter"

    def __init__(self, options: Union[QualityFilterOptions, Dict, None] = None):
        if isinstance(options, dict):
            options = QualityFilterOptions(**options)
        self.options = options or QualityFilterOptions()

    def check(self, record: EvidenceRecord) -> Optional[str]:
        opts = self.options
        composite = record.evidence.composite_score or 0
        if composite < opts.min_composite_score:
            return f"composite score {composite} below {opts.min_composite_score}"
        if record.evidence.confidence < opts.min_confidence:
            return f"confidence {record.evidence.confidence} below {opts.min_confidence}"
        if opts.require_mechanism and not is_mechanism_known(record.interaction.mechanism):
            return "mechanism required but unknown"
        if opts.require_pathways and not record.interaction.pathways:
            return "pathways required but none recorded"
        return None

    def apply(self, records: List[EvidenceRecord]) -> FilterOutcome:
        outcome = FilterOutcome()
        for record in records:
            reason = self.check(record)
            if reason:
                outcome.rejected.append(RejectedRecord(record=record, reason=reason, stage=self.STAGE))
            else:
                outcome.kept.append(record)
        return outcome


def deduplication_key(record: EvidenceRecord) -> str:
    return "|".join([
        record.drug_a.resolved_id or record.drug_a.raw_name,
        record.drug_b.resolved_id or record.drug_b.raw_name,
        record.interaction.mechanism,
        record.source_type.value,
    ])


def deduplicate(records: List[EvidenceRecord]) -> List[EvidenceRecord]:
    """Drop exact duplicates, keeping the first occurrence"""
    seen = set()
    unique = []
    for record in records:
        key = deduplication_key(record)
        if key not in seen:
            seen.add(key)
            unique.append(record)
    return unique
