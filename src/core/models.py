"""
DDI Evidence Mining Engine - Data Models
Sprint 0: Foundation Data Structures
"""
from dataclasses import dataclass, field, asdict
from typing import List, Optional, Dict, Any, Set
from enum import Enum
from datetime import datetime
import copy

import pandas as pd

from src.core.errors import UnknownSourceTypeError
from src.core.tables import SEVERITY_SYNONYMS, EVIDENCE_LEVEL_SYNONYMS, UNKNOWN_MECHANISM


class SourceType(Enum):
    REGULATORY_LABEL = "regulatory_label"
    CLINICAL_TRIAL = "clinical_trial"
    PUBLICATION = "publication"


class Severity(Enum):
    MINOR = "minor"
    MODERATE = "moderate"
    MAJOR = "major"
    CONTRAINDICATED = "contraindicated"

    @property
    def rank(self) -> int:
        return SEVERITY_ORDER.index(self)

    @classmethod
    def parse(cls, value: Any, synonyms: Optional[Dict[str, str]] = None) -> "Severity":
        """Map free text onto the closed enumeration; unknown or absent is moderate"""
        if isinstance(value, cls):
            return value
        if not value:
            return cls.MODERATE
        table = synonyms if synonyms is not None else SEVERITY_SYNONYMS
        canonical = table.get(str(value).strip().lower())
        return cls(canonical) if canonical else cls.MODERATE


class EvidenceLevel(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return EVIDENCE_LEVEL_ORDER.index(self)

    @classmethod
    def parse(cls, value: Any, synonyms: Optional[Dict[str, str]] = None) -> "EvidenceLevel":
        """Map free text onto the closed enumeration; unknown or absent is medium"""
        if isinstance(value, cls):
            return value
        if not value:
            return cls.MEDIUM
        table = synonyms if synonyms is not None else EVIDENCE_LEVEL_SYNONYMS
        canonical = table.get(str(value).strip().lower())
        return cls(canonical) if canonical else cls.MEDIUM


SEVERITY_ORDER = [Severity.MINOR, Severity.MODERATE, Severity.MAJOR, Severity.CONTRAINDICATED]
EVIDENCE_LEVEL_ORDER = [EvidenceLevel.LOW, EvidenceLevel.MEDIUM, EvidenceLevel.HIGH]


class StudyType(Enum):
    RCT = "RCT"
    OBSERVATIONAL = "observational"
    CASE_REPORT = "case_report"
    IN_VITRO = "in_vitro"
    PHARMACOKINETIC = "pharmacokinetic"
    UNKNOWN = "unknown"
    # Non-literature sources
    DEDICATED_DDI_STUDY = "dedicated_DDI_study"
    EXCLUSION_CRITERIA = "exclusion_criteria"
    REGULATORY_REVIEW = "regulatory_review"


@dataclass
class DrugReference:
    """One side of an interacting drug pair"""
    raw_name: str
    resolved_id: Optional[str] = None


@dataclass
class Interaction:
    """What the source asserts about the interaction"""
    mechanism: str = UNKNOWN_MECHANISM
    pathways: Set[str] = field(default_factory=set)
    effect: str = ""
    severity: Severity = Severity.MODERATE
    clinical_significance: str = ""
    interaction_type: str = ""
    management: str = ""


@dataclass
class EvidenceDetails:
    """Strength of the evidence behind a claim"""
    level: EvidenceLevel = EvidenceLevel.MEDIUM
    study_type: str = StudyType.UNKNOWN.value
    confidence: int = 50  # 0-100
    population_size: Optional[int] = None
    statistical_significance: Optional[str] = None
    context: Optional[str] = None  # abstract, section name, label section
    quality_score: Optional[float] = None
    composite_score: Optional[int] = None


@dataclass
class Pharmacokinetics:
    """Captured PK changes, e.g. "150%" or "3-fold" """
    auc_change: Optional[str] = None
    cmax_change: Optional[str] = None
    clearance_change: Optional[str] = None
    half_life_change: Optional[str] = None


@dataclass
class Provenance:
    """Where a claim came from"""
    title: str = ""
    authors: List[str] = field(default_factory=list)
    publication_date: str = ""
    journal: str = ""
    doi: Optional[str] = None
    url: Optional[str] = None
    raw_snippet: str = ""
    section: Optional[str] = None
    regulatory_agency: Optional[str] = None


@dataclass
class ExtractionMetadata:
    extracted_at: datetime = field(default_factory=datetime.now)
    method: str = "automated"
    text_confidence: Optional[int] = None
    merged_source_ids: List[str] = field(default_factory=list)


@dataclass
class EvidenceRecord:
    """One asserted interaction claim from one source instance"""
    source_type: SourceType
    source_id: str
    drug_a: DrugReference
    drug_b: DrugReference
    interaction: Interaction = field(default_factory=Interaction)
    evidence: EvidenceDetails = field(default_factory=EvidenceDetails)
    pharmacokinetics: Optional[Pharmacokinetics] = None
    provenance: Provenance = field(default_factory=Provenance)
    extraction_metadata: ExtractionMetadata = field(default_factory=ExtractionMetadata)

    @property
    def is_resolvable(self) -> bool:
        return bool(self.drug_a.resolved_id) and bool(self.drug_b.resolved_id)

    def copy(self) -> "EvidenceRecord":
        return copy.deepcopy(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], tables=None) -> "EvidenceRecord":
        """
        Build a record from a loosely shaped dict (extractor output, JSON
        fixtures, spreadsheet rows).

        Free-text severity and evidence level are canonicalized here so the
        record never carries values outside the enumerations. Blank cells and
        NaN count as absent. A missing source type raises ValueError; a
        source type outside the enumeration is a caller defect and raises
        UnknownSourceTypeError.
        """
        severity_synonyms = tables.severity_synonyms if tables else None
        level_synonyms = tables.evidence_level_synonyms if tables else None

        interaction = _section(data.get("interaction"))
        evidence = _section(data.get("evidence"))
        provenance = _section(data.get("provenance"))
        metadata = _section(data.get("extraction_metadata"))
        pk = data.get("pharmacokinetics")

        pathways = interaction.get("pathways")
        if is_missing(pathways):
            pathways = set()
        elif isinstance(pathways, str):
            pathways = {p.strip() for p in pathways.replace(";", ",").split(",") if p.strip()}

        text_conf = metadata.get("text_confidence")

        return cls(
            source_type=parse_source_type(data.get("source_type")),
            source_id=_text(data.get("source_id")),
            drug_a=_drug_from_dict(data.get("drug_a")),
            drug_b=_drug_from_dict(data.get("drug_b")),
            interaction=Interaction(
                mechanism=_text(interaction.get("mechanism")),
                pathways=set(pathways),
                effect=_text(interaction.get("effect")),
                severity=Severity.parse(_optional(interaction.get("severity")), severity_synonyms),
                clinical_significance=_text(interaction.get("clinical_significance")),
                interaction_type=_text(interaction.get("interaction_type")),
                management=_text(interaction.get("management")),
            ),
            evidence=EvidenceDetails(
                level=EvidenceLevel.parse(_optional(evidence.get("level")), level_synonyms),
                study_type=_text(evidence.get("study_type")) or StudyType.UNKNOWN.value,
                confidence=parse_confidence(evidence.get("confidence")),
                population_size=_optional(evidence.get("population_size")),
                statistical_significance=_optional(evidence.get("statistical_significance")),
                context=_optional(evidence.get("context")),
            ),
            pharmacokinetics=Pharmacokinetics(**{
                k: _optional(v) for k, v in pk.items() if k in Pharmacokinetics.__dataclass_fields__
            }) if isinstance(pk, dict) and pk else None,
            provenance=Provenance(
                title=_text(provenance.get("title")),
                authors=list(_optional(provenance.get("authors")) or []),
                publication_date=_text(provenance.get("publication_date")),
                journal=_text(provenance.get("journal")),
                doi=_optional(provenance.get("doi")),
                url=_optional(provenance.get("url")),
                raw_snippet=_text(provenance.get("raw_snippet")),
                section=_optional(provenance.get("section")),
                regulatory_agency=_optional(provenance.get("regulatory_agency")),
            ),
            extraction_metadata=ExtractionMetadata(
                method=_text(metadata.get("method")) or "automated",
                text_confidence=None if is_missing(text_conf) else parse_confidence(text_conf),
                merged_source_ids=list(_optional(metadata.get("merged_source_ids")) or []),
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["source_type"] = self.source_type.value
        d["interaction"]["severity"] = self.interaction.severity.value
        d["interaction"]["pathways"] = sorted(self.interaction.pathways)
        d["evidence"]["level"] = self.evidence.level.value
        d["extraction_metadata"]["extracted_at"] = self.extraction_metadata.extracted_at.isoformat()
        return d


def is_missing(value: Any) -> bool:
    """None, NaN and blank strings all count as an absent value"""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return bool(pd.api.types.is_scalar(value) and pd.isna(value))


def _optional(value: Any) -> Any:
    return None if is_missing(value) else value


def _text(value: Any) -> str:
    return "" if is_missing(value) else str(value)


def _section(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def parse_confidence(value: Any, default: int = 50) -> int:
    """Lenient 0-100 parse; accepts 85, 85.4, "85" and "85%"."""
    if is_missing(value):
        return default
    try:
        confidence = float(str(value).strip().rstrip("%"))
    except ValueError:
        return default
    if pd.isna(confidence):
        return default
    return max(0, min(100, int(round(confidence))))


def parse_source_type(value: Any) -> "SourceType":
    if isinstance(value, SourceType):
        return value
    if is_missing(value):
        raise ValueError("Evidence record has no source type")
    try:
        return SourceType(str(value).strip().lower())
    except ValueError:
        raise UnknownSourceTypeError(f"Unknown source type: {value!r}") from None


def _drug_from_dict(value: Any) -> DrugReference:
    if isinstance(value, DrugReference):
        return value
    if isinstance(value, str):
        return DrugReference(raw_name=value)
    value = _section(value)
    resolved_id = _optional(value.get("resolved_id"))
    if resolved_id is None:
        resolved_id = _optional(value.get("rxcui"))
    return DrugReference(
        raw_name=_text(value.get("raw_name")) or _text(value.get("name")),
        resolved_id=str(resolved_id).strip() if resolved_id is not None else None,
    )


@dataclass
class MergedEvidenceRecord(EvidenceRecord):
    """Canonical record for one drug pair after conflict resolution"""
    sources_count: int = 1
    source_types: Set[SourceType] = field(default_factory=set)

    @classmethod
    def from_record(cls, record: EvidenceRecord) -> "MergedEvidenceRecord":
        """Deep-copy a record into a merged record (keeps merge fields if present)"""
        base = record.copy()
        return cls(
            source_type=base.source_type,
            source_id=base.source_id,
            drug_a=base.drug_a,
            drug_b=base.drug_b,
            interaction=base.interaction,
            evidence=base.evidence,
            pharmacokinetics=base.pharmacokinetics,
            provenance=base.provenance,
            extraction_metadata=base.extraction_metadata,
            sources_count=getattr(base, "sources_count", 1),
            source_types=set(getattr(base, "source_types", set())) or {base.source_type},
        )

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["source_types"] = sorted(st.value for st in self.source_types)
        return d


@dataclass
class RejectedRecord:
    """A record that did not make it into the accepted set"""
    record: Any  # EvidenceRecord, or the raw dict when it could not be loaded
    reason: str
    stage: str  # standardization, resolution, merge, validation, quality_filter


@dataclass
class DocumentMetadata:
    """Bibliographic metadata for one repository document"""
    document_id: str
    title: str = ""
    abstract: str = ""
    authors: List[str] = field(default_factory=list)
    journal: str = ""
    publication_date: str = ""
    mesh_terms: List[str] = field(default_factory=list)
    publication_types: List[str] = field(default_factory=list)
    pmcid: Optional[str] = None
    doi: Optional[str] = None
