"""
DDI Evidence Mining Engine - Conflict Resolver
Sprint 4: Collapse each drug-pair group into one merged record

Field policy when folding an incoming record into the base:
- severity, evidence level: strict max by rank
- mechanism, effect: ordered union of ';'-separated parts
- pathways: set union
- pharmacokinetics: taken from incoming only when the base has none
"""
import copy
import logging
from typing import Dict, List, Optional, Tuple

from src.core.models import EvidenceRecord, MergedEvidenceRecord
from src.core.tables import UNKNOWN_MECHANISM
from src.normalization.scoring import QualityScorer, get_scorer

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def _split_parts(value: Optional[str]) -> List[str]:
    return [p.strip() for p in (value or "").split(";") if p.strip()]


def union_text(base: str, incoming: str, placeholder: Optional[str] = None) -> str:
    """';'-joined ordered union; a placeholder part is dropped once real parts exist"""
    if not incoming or incoming == base:
        return base
    parts: List[str] = []
    for part in _split_parts(base) + _split_parts(incoming):
        if part not in parts:
            parts.append(part)
    if placeholder and len(parts) > 1:
        parts = [p for p in parts if p.lower() != placeholder] or parts
    return "; ".join(parts)


def merge_fields(base: MergedEvidenceRecord, incoming: EvidenceRecord) -> None:
    """Fold one record into the base in place"""
    interaction = base.interaction
    other = incoming.interaction

    if other.severity.rank > interaction.severity.rank:
        interaction.severity = other.severity

    interaction.mechanism = union_text(interaction.mechanism, other.mechanism, UNKNOWN_MECHANISM)
    interaction.pathways = set(interaction.pathways) | set(other.pathways)
    interaction.effect = union_text(interaction.effect, other.effect)

    if incoming.evidence.level.rank > base.evidence.level.rank:
        base.evidence.level = incoming.evidence.level

    if base.pharmacokinetics is None and incoming.pharmacokinetics is not None:
        base.pharmacokinetics = copy.deepcopy(incoming.pharmacokinetics)


def _source_ids(record: EvidenceRecord) -> List[str]:
    return [record.source_id] + list(record.extraction_metadata.merged_source_ids)


def merge(group: List[EvidenceRecord], scorer: Optional[QualityScorer] = None) -> MergedEvidenceRecord:
    """
    Merge one drug-pair group.

    The highest-quality record is the base (first wins on ties) and the rest
    are folded in by descending quality. Severity and evidence level are a
    strict-max reduction, so the result does not depend on input order and
    re-merging a merged record with one of its contributors leaves them as
    they were.
    """
    if not group:
        raise ValueError("Cannot merge an empty evidence group")
    scorer = scorer or get_scorer()

    ranked = sorted(group, key=scorer.quality_score, reverse=True)
    merged = MergedEvidenceRecord.from_record(ranked[0])

    for incoming in ranked[1:]:
        merge_fields(merged, incoming)

    merged.sources_count = len(group)
    source_types = set()
    for record in group:
        source_types.add(record.source_type)
        source_types.update(getattr(record, "source_types", set()))
    merged.source_types = source_types

    merged_ids = merged.extraction_metadata.merged_source_ids
    for record in group:
        for source_id in _source_ids(record):
            if source_id and source_id not in merged_ids:
                merged_ids.append(source_id)

    return merged


def merge_groups(
    groups: Dict[str, List[EvidenceRecord]],
    scorer: Optional[QualityScorer] = None
) -> Tuple[List[MergedEvidenceRecord], Dict[str, str]]:
    """Merge every group; groups that fail come back in failures (pair key -> reason)"""
    merged = []
    failures: Dict[str, str] = {}
    for key, records in groups.items():
        try:
            merged.append(merge(records, scorer))
        except Exception as e:
            logger.warning(f"Error merging evidence for pair {key}: {e}")
            failures[key] = str(e) or type(e).__name__
    logger.info(f"Merged {sum(len(g) for g in groups.values())} records into {len(merged)} pairs")
    return merged, failures
