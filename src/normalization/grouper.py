"""
DDI Evidence Mining Engine - Drug Pair Grouper
Sprint 4: Order-independent grouping by resolved identifiers
"""
import logging
from collections import OrderedDict
from typing import Dict, Iterable, List

from config.settings import PAIR_KEY_SEPARATOR
from src.core.models import EvidenceRecord

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def pair_key(id_a: str, id_b: str) -> str:
    """Same key for (A, B) and (B, A)"""
    first, second = sorted([id_a, id_b])
    return f"{first}{PAIR_KEY_SEPARATOR}{second}"


def group(records: Iterable[EvidenceRecord]) -> Dict[str, List[EvidenceRecord]]:
    groups: Dict[str, List[EvidenceRecord]] = OrderedDict()
    skipped = 0
    for record in records:
        if not record.is_resolvable:
            skipped += 1
            continue
        key = pair_key(record.drug_a.resolved_id, record.drug_b.resolved_id)
        groups.setdefault(key, []).append(record)

    if skipped:
        logger.debug(f"Excluded {skipped} unresolved records from grouping")
    return groups
