"""
DDI Evidence Mining Engine - Record Export
Sprint 5: Flat tabular export of merged evidence and raw record loading
"""
import json
import logging
from typing import List, Dict, Any, Iterable

import pandas as pd

from src.core.models import EvidenceRecord, is_missing

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

EXPORT_COLUMNS = [
    "drug_a_name", "drug_a_id", "drug_b_name", "drug_b_id",
    "severity", "mechanism", "pathways", "effect",
    "source_type", "source_types", "sources_count",
    "evidence_level", "composite_score", "quality_score",
    "title", "url",
]

SUPPORTED_FORMATS = ("json", "csv", "tsv")


def record_to_row(record: EvidenceRecord) -> Dict[str, Any]:
    source_types = getattr(record, "source_types", None) or {record.source_type}
    return {
        "drug_a_name": record.drug_a.raw_name,
        "drug_a_id": record.drug_a.resolved_id or "",
        "drug_b_name": record.drug_b.raw_name,
        "drug_b_id": record.drug_b.resolved_id or "",
        "severity": record.interaction.severity.value,
        "mechanism": record.interaction.mechanism,
        "pathways": ", ".join(sorted(record.interaction.pathways)),
        "effect": record.interaction.effect,
        "source_type": record.source_type.value,
        "source_types": ", ".join(sorted(st.value for st in source_types)),
        "sources_count": getattr(record, "sources_count", 1),
        "evidence_level": record.evidence.level.value,
        "composite_score": record.evidence.composite_score,
        "quality_score": record.evidence.quality_score,
        "title": record.provenance.title,
        "url": record.provenance.url or "",
    }


def records_to_dataframe(records: Iterable[EvidenceRecord]) -> pd.DataFrame:
    return pd.DataFrame([record_to_row(r) for r in records], columns=EXPORT_COLUMNS)


def export_records(records: Iterable[EvidenceRecord], fmt: str = "csv") -> str:
    """Serialize records as CSV, TSV or JSON text"""
    fmt = fmt.lower()
    if fmt not in SUPPORTED_FORMATS:
        raise ValueError(f"Unsupported export format: {fmt}")

    records = list(records)
    if fmt == "json":
        return json.dumps([r.to_dict() for r in records], indent=2, default=str)

    df = records_to_dataframe(records)
    return df.to_csv(index=False, sep="\t" if fmt == "tsv" else ",")


def load_raw_records(filepath: str) -> List[Dict[str, Any]]:
    """
    Load raw evidence dicts from a JSON list or a flat CSV/Excel sheet.

    Flat sheets use the export column names; rows become the nested shape
    EvidenceRecord.from_dict() expects.
    """
    logger.info(f"Loading raw evidence from {filepath}")

    if filepath.endswith(".json"):
        with open(filepath, 'r', encoding='utf-8') as f:
            return list(json.load(f))

    if filepath.endswith((".xlsx", ".xls")):
        df = pd.read_excel(filepath, dtype=str)
    else:
        df = pd.read_csv(filepath, dtype=str)
    # Blank cells come back as NaN; turn them into None before building dicts
    df = df.astype(object).where(df.notna(), None)

    raw = []
    for _, row in df.iterrows():
        row = {k: (None if is_missing(v) else v) for k, v in row.to_dict().items()}
        raw.append({
            "source_type": row.get("source_type"),
            "source_id": row.get("source_id") or row.get("title") or "",
            "drug_a": {"name": row.get("drug_a_name"), "rxcui": row.get("drug_a_id")},
            "drug_b": {"name": row.get("drug_b_name"), "rxcui": row.get("drug_b_id")},
            "interaction": {
                "mechanism": row.get("mechanism"),
                "pathways": row.get("pathways") or "",
                "effect": row.get("effect"),
                "severity": row.get("severity"),
            },
            "evidence": {
                "level": row.get("evidence_level"),
                "study_type": row.get("study_type"),
            },
            "provenance": {"title": row.get("title") or "", "url": row.get("url")},
        })

    logger.info(f"Loaded {len(raw)} raw evidence records")
    return raw
