"""
DDI Evidence Mining Engine - Evidence Standardizer
Sprint 4: Canonical severity, mechanism, pathways and drug names
"""
import logging
import re
from typing import Iterable, List, Optional, Union

from src.core.models import EvidenceRecord, Severity
from src.core.tables import NormalizationTables, get_tables, UNKNOWN_MECHANISM

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class EvidenceStandardizer:
    """
    Canonicalizes individual evidence records.

    standardize() never mutates its input and never raises for bad data;
    a record that fails the structural check comes back as None.
    """

    def __init__(self, tables: Optional[NormalizationTables] = None):
        self.tables = tables or get_tables()
        suffixes = "|".join(re.escape(s) for s in self.tables.dosage_form_suffixes)
        self._dosage_form_re = re.compile(rf"\s+(?:{suffixes})s?$")

    def standardize_severity(self, value: Union[str, Severity, None]) -> Severity:
        return Severity.parse(value, self.tables.severity_synonyms)

    def standardize_mechanism(self, mechanism: Optional[str]) -> str:
        if not mechanism or not mechanism.strip():
            return UNKNOWN_MECHANISM
        lower = mechanism.lower()
        for category, phrases in self.tables.mechanism_phrases.items():
            if any(p.lower() in lower for p in phrases):
                return category.replace("_", " ")
        return mechanism.strip()

    def _canonical_pathway(self, token: str) -> str:
        lower = token.lower()
        for code, variants in self.tables.enzyme_synonyms.items():
            if any(v.lower() == lower for v in variants):
                return code
        for code, variants in self.tables.enzyme_synonyms.items():
            if any(v.lower() in lower for v in variants):
                return code
        return token

    def standardize_pathways(self, pathways: Union[str, Iterable[str], None]) -> set:
        if not pathways:
            return set()
        if isinstance(pathways, str):
            tokens: List[str] = re.split(r"[,;]", pathways)
        else:
            tokens = []
            for item in pathways:
                tokens.extend(re.split(r"[,;]", item or ""))

        return {self._canonical_pathway(t.strip()) for t in tokens if t and t.strip()}

    def standardize_drug_name(self, name: Optional[str]) -> str:
        if not name:
            return ""
        standardized = " ".join(name.split()).lower()
        previous = None
        while previous != standardized:
            previous = standardized
            standardized = self._dosage_form_re.sub("", standardized)
        return self.tables.drug_abbreviations.get(standardized, standardized)

    def standardize(self, record: EvidenceRecord) -> Optional[EvidenceRecord]:
        standardized = record.copy()
        interaction = standardized.interaction

        interaction.severity = self.standardize_severity(interaction.severity)
        interaction.mechanism = self.standardize_mechanism(interaction.mechanism)
        interaction.pathways = self.standardize_pathways(interaction.pathways)
        standardized.drug_a.raw_name = self.standardize_drug_name(standardized.drug_a.raw_name)
        standardized.drug_b.raw_name = self.standardize_drug_name(standardized.drug_b.raw_name)

        if not self.is_structurally_valid(standardized):
            logger.warning(f"Invalid evidence record after standardization: {record.source_id}")
            return None
        return standardized

    @staticmethod
    def is_structurally_valid(record: EvidenceRecord) -> bool:
        return bool(
            record.drug_a.raw_name
            and record.drug_b.raw_name
            and record.interaction.mechanism
            and isinstance(record.interaction.severity, Severity)
        )
