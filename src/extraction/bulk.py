"""
DDI Evidence Mining Engine - Bulk Extraction
Sprint 3: Fixed-size concurrent batches over a drug list
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from config.settings import BULK_BATCH_SIZE, BULK_BATCH_DELAY_SECONDS
from src.core.models import EvidenceRecord

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class BatchOptions(BaseModel):
    batch_size: int = Field(default=BULK_BATCH_SIZE, ge=1)
    batch_delay_seconds: float = Field(default=BULK_BATCH_DELAY_SECONDS, ge=0)


@dataclass
class BulkExtractionResult:
    """Outcome of a bulk run: successes' records plus per-drug failures"""
    records: List[EvidenceRecord] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)
    batches: int = 0
    drugs_processed: List[str] = field(default_factory=list)
    cancelled: bool = False


async def run_batches(
    collect: Callable[[str], Awaitable[List[EvidenceRecord]]],
    drug_names: List[str],
    options: BatchOptions,
    cancel_event: Optional[asyncio.Event] = None,
    source: str = "publication"
) -> BulkExtractionResult:
    """
    Call collect(drug) for every drug, batch_size drugs at a time.

    A failing drug is recorded in failures and never stops the rest of its
    batch or later batches. The pause runs between batches, not after the
    last one. Setting cancel_event stops the run before the next batch.
    """
    result = BulkExtractionResult()
    size = options.batch_size
    batches = [drug_names[i:i + size] for i in range(0, len(drug_names), size)]
    logger.info(f"Starting bulk {source} extraction for {len(drug_names)} drugs "
                f"in {len(batches)} batches")

    for index, batch in enumerate(batches):
        if cancel_event is not None and cancel_event.is_set():
            logger.info(f"Bulk {source} extraction cancelled before batch {index + 1}")
            result.cancelled = True
            break

        logger.info(f"Processing {source} batch {index + 1}/{len(batches)}")
        outcomes = await asyncio.gather(*(collect(drug) for drug in batch), return_exceptions=True)
        result.batches += 1

        for drug, outcome in zip(batch, outcomes):
            if isinstance(outcome, Exception):
                logger.error(f"Failed to extract {source} evidence for {drug}: {outcome}")
                result.failures[drug] = str(outcome) or type(outcome).__name__
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                result.records.extend(outcome)
                result.drugs_processed.append(drug)

        if index < len(batches) - 1:
            await asyncio.sleep(options.batch_delay_seconds)

    logger.info(f"Bulk {source} extraction completed: {len(result.records)} records, "
                f"{len(result.failures)} failures")
    return result
