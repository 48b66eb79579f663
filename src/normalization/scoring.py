"""
DDI Evidence Mining Engine - Quality & Confidence Scorer
Sprint 4: Evidence quality model
"""
import logging
from typing import Dict, Optional

from config.settings import (
    QUALITY_WEIGHTS, QUALITY_MULTIPLIERS,
    COMPOSITE_QUALITY_WEIGHT, COMPOSITE_CONFIDENCE_WEIGHT, DEFAULT_TEXT_CONFIDENCE,
)
from src.core.models import EvidenceRecord
from src.extraction.lexical import is_mechanism_known

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class QualityScorer:
    """
    Weighted evidence quality.

    quality = source weight x 30 + level weight x 30 + study weight x 20
              + 5 x severity rank + 10 (known mechanism) + 5 (pathways)

    The composite blends quality with the extraction's text confidence and
    is what downstream ranking and filtering use.
    """

    def __init__(
        self,
        weights: Optional[Dict] = None,
        multipliers: Optional[Dict[str, float]] = None,
        quality_weight: float = COMPOSITE_QUALITY_WEIGHT,
        confidence_weight: float = COMPOSITE_CONFIDENCE_WEIGHT,
        default_text_confidence: int = DEFAULT_TEXT_CONFIDENCE
    ):
        self.weights = weights or QUALITY_WEIGHTS
        self.multipliers = multipliers or QUALITY_MULTIPLIERS
        self.quality_weight = quality_weight
        self.confidence_weight = confidence_weight
        self.default_text_confidence = default_text_confidence

    def _weight(self, table: str, key: str) -> float:
        return self.weights.get(table, {}).get(key, self.weights.get("default", 0.1))

    def quality_score(self, record: EvidenceRecord) -> float:
        m = self.multipliers
        score = (
            self._weight("source_type", record.source_type.value) * m["source_type"]
            + self._weight("evidence_level", record.evidence.level.value) * m["evidence_level"]
            + self._weight("study_type", record.evidence.study_type) * m["study_type"]
            + record.interaction.severity.rank * m["severity_rank"]
        )
        if is_mechanism_known(record.interaction.mechanism):
            score += m["mechanism_known"]
        if record.interaction.pathways:
            score += m["pathways_present"]
        return round(score, 2)

    def text_confidence(self, record: EvidenceRecord) -> int:
        value = record.extraction_metadata.text_confidence
        return self.default_text_confidence if value is None else value

    def composite_score(self, record: EvidenceRecord) -> int:
        return round(self.quality_weight * self.quality_score(record)
                     + self.confidence_weight * self.text_confidence(record))

    def score(self, record: EvidenceRecord) -> EvidenceRecord:
        """Store quality, composite and blended confidence on the record"""
        quality = self.quality_score(record)
        confidence = self.text_confidence(record)
        record.evidence.quality_score = quality
        record.evidence.composite_score = round(
            self.quality_weight * quality + self.confidence_weight * confidence)
        record.evidence.confidence = round((quality + confidence) / 2)
        return record


# Singleton instance
_scorer: Optional[QualityScorer] = None

def get_scorer() -> QualityScorer:
    global _scorer
    if _scorer is None:
        _scorer = QualityScorer()
    return _scorer
