"""
DDI Evidence Mining Engine - Normalization Report
Sprint 4: Summary statistics over a completed run
"""
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Any, Iterable, List

import numpy as np

from config.settings import HIGH_QUALITY_COMPOSITE
from src.core.models import EvidenceRecord, RejectedRecord
from src.core.tables import UNKNOWN_MECHANISM
from src.extraction.lexical import is_mechanism_known

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@dataclass
class NormalizationReport:
    original_count: int
    normalized_count: int
    reduction_percentage: int
    source_types: Dict[str, int] = field(default_factory=dict)
    severities: Dict[str, int] = field(default_factory=dict)
    evidence_levels: Dict[str, int] = field(default_factory=dict)
    mechanism_types: Dict[str, int] = field(default_factory=dict)
    average_composite_score: int = 0
    high_quality_count: int = 0
    mechanism_known_count: int = 0
    rejected_by_stage: Dict[str, int] = field(default_factory=dict)
    generated_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": {
                "original_count": self.original_count,
                "normalized_count": self.normalized_count,
                "reduction_percentage": self.reduction_percentage,
            },
            "distributions": {
                "source_types": dict(self.source_types),
                "severities": dict(self.severities),
                "evidence_levels": dict(self.evidence_levels),
                "mechanism_types": dict(self.mechanism_types),
            },
            "quality_metrics": {
                "average_composite_score": self.average_composite_score,
                "high_quality_count": self.high_quality_count,
                "mechanism_known_count": self.mechanism_known_count,
            },
            "rejections": dict(self.rejected_by_stage),
            "generated_at": self.generated_at.isoformat(),
        }


def reduction_percentage(original_count: int, accepted_count: int) -> int:
    if original_count <= 0:
        return 0
    value = round(100 * (1 - accepted_count / original_count))
    return max(0, min(100, value))


def mechanism_category(mechanism: str) -> str:
    """Top-level category is the first ';' part"""
    first = (mechanism or "").split(";")[0].strip()
    return first or UNKNOWN_MECHANISM


def generate_report(
    original_count: int,
    accepted: List[EvidenceRecord],
    rejected: Iterable[RejectedRecord] = ()
) -> NormalizationReport:
    composites = np.array([r.evidence.composite_score or 0 for r in accepted], dtype=float)

    report = NormalizationReport(
        original_count=original_count,
        normalized_count=len(accepted),
        reduction_percentage=reduction_percentage(original_count, len(accepted)),
        source_types=dict(Counter(r.source_type.value for r in accepted)),
        severities=dict(Counter(r.interaction.severity.value for r in accepted)),
        evidence_levels=dict(Counter(r.evidence.level.value for r in accepted)),
        mechanism_types=dict(Counter(mechanism_category(r.interaction.mechanism) for r in accepted)),
        average_composite_score=int(round(composites.mean())) if composites.size else 0,
        high_quality_count=int((composites >= HIGH_QUALITY_COMPOSITE).sum()),
        mechanism_known_count=sum(1 for r in accepted if is_mechanism_known(r.interaction.mechanism)),
        rejected_by_stage=dict(Counter(r.stage for r in rejected)),
    )

    logger.info(f"Normalization report: {original_count} -> {len(accepted)} "
                f"({report.reduction_percentage}% reduction)")
    return report
