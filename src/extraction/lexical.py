"""
DDI Evidence Mining Engine - Lexical Extraction
Sprint 2: Rule-based extraction of interaction facts from free text

Everything here is a pure function of the text (plus lookup tables), so the
publication, label and trial extractors share one set of rules.
"""
import logging
import re
from typing import List, Optional, Tuple, Sequence

from config.settings import (
    CONFIDENCE_WEIGHTS, LONG_TEXT_LENGTH,
    TEXT_CONFIDENCE_WEIGHTS, TEXT_CONFIDENCE_MIN_LENGTH,
    SEVERITY_AUC_MAJOR_THRESHOLD, SEVERITY_AUC_MODERATE_THRESHOLD,
)
from src.core.models import Pharmacokinetics, Severity, EvidenceLevel, StudyType
from src.core.tables import (
    NormalizationTables, get_tables,
    SEVERITY_KEYWORDS, ENZYME_PATTERNS, GENERIC_SUFFIXES, BRAND_SUFFIXES,
    MIN_DRUG_NAME_LENGTH, MAX_DRUG_NAME_LENGTH, UNKNOWN_MECHANISM,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# ==================== Patterns ====================

GENERIC_NAME_RE = re.compile(
    r"\b([a-z]+(?:" + "|".join(GENERIC_SUFFIXES) + r"))\b", re.IGNORECASE)
BRAND_NAME_RE = re.compile(
    r"\b([A-Z][a-z]+(?:" + "|".join(BRAND_SUFFIXES) + r"))\b")
PARENTHETICAL_RE = re.compile(r"\(([A-Za-z][A-Za-z\s-]{3,20})\)")
DRUG_LIST_RE = re.compile(r"(?:including|such as|namely)\s+([^.;:()]+)", re.IGNORECASE)
LIST_SPLIT_RE = re.compile(r",|\band\b|\bor\b", re.IGNORECASE)

ENZYME_RE = re.compile("|".join(f"(?:{p})" for p in ENZYME_PATTERNS), re.IGNORECASE)
CYP_ISOFORM_RE = re.compile(r"(?:CYP|cytochrome\s+P450)\s*([0-9][A-Z][0-9]+)", re.IGNORECASE)
PGP_RE = re.compile(r"^P-?(?:glycoprotein|gp)$", re.IGNORECASE)

PK_PARAMETERS = {
    "auc_change": r"AUC",
    "cmax_change": r"C\s?max",
    "clearance_change": r"clearance",
    "half_life_change": r"half-?life",
}
_AMOUNT = r"(\d+(?:\.\d+)?)\s*(%|-?fold|times)"

POPULATION_RE = re.compile(r"(\d+)\s*(?:healthy\s+)?(?:patients?|subjects?|participants?|volunteers?)",
                           re.IGNORECASE)
P_VALUE_RE = re.compile(r"\bp\s*([<>=≤])\s*(\d*\.?\d+)", re.IGNORECASE)


def _pk_patterns(parameter: str, direction: str = r"increase|decrease") -> List[re.Pattern]:
    """Parameter-first ("AUC increased by 2-fold") and verb-first ("increased the AUC 150%")"""
    return [
        re.compile(rf"{parameter}[^.]*?(?:{direction})[^.]*?{_AMOUNT}", re.IGNORECASE),
        re.compile(rf"(?:{direction})[a-z]*\s[^.]*?{parameter}[^.]*?{_AMOUNT}", re.IGNORECASE),
    ]


# ==================== Screening ====================

def contains_ddi_content(text: str, keywords: Optional[Sequence[str]] = None) -> bool:
    if not text:
        return False
    if keywords is None:
        keywords = get_tables().ddi_keywords
    lower = text.lower()
    return any(k.lower() in lower for k in keywords)


# ==================== Drug Mentions ====================

def is_likely_drug_name(name: str, tables: Optional[NormalizationTables] = None) -> bool:
    tables = tables or get_tables()
    if len(name) < MIN_DRUG_NAME_LENGTH or len(name) > MAX_DRUG_NAME_LENGTH:
        return False
    if name.isdigit():
        return False
    lower = name.lower()
    if any(word in tables.non_drug_words for word in lower.split()):
        return False
    # Enzyme and transporter names are pathways, not partners
    if ENZYME_RE.fullmatch(name):
        return False
    return True


def find_drug_mentions(text: str, tables: Optional[NormalizationTables] = None) -> List[str]:
    """
    Find candidate drug names in text.

    Returns lower-cased names in order of first appearance. Candidates come
    from generic-name suffixes, brand-like capitalized tokens, parenthetical
    mentions and "including/such as/namely" lists.
    """
    tables = tables or get_tables()
    candidates: List[str] = []

    for pattern in (GENERIC_NAME_RE, BRAND_NAME_RE, PARENTHETICAL_RE):
        candidates.extend(m.group(1) for m in pattern.finditer(text))

    for match in DRUG_LIST_RE.finditer(text):
        candidates.extend(LIST_SPLIT_RE.split(match.group(1)))

    mentions: List[str] = []
    for candidate in candidates:
        name = " ".join(candidate.split()).strip(" -")
        if not name or not is_likely_drug_name(name, tables):
            continue
        name = name.lower()
        if name not in mentions:
            mentions.append(name)

    return mentions


# ==================== Enzymes / Mechanism ====================

def canonical_enzyme(token: str) -> str:
    token = " ".join(token.split())
    isoform = CYP_ISOFORM_RE.fullmatch(token)
    if isoform:
        return f"CYP{isoform.group(1).upper()}"
    if PGP_RE.match(token):
        return "P-gp"
    return token.replace(" ", "").upper()


def find_enzymes(text: str) -> List[str]:
    """Enzyme and transporter codes mentioned in text, canonicalized, first-seen order"""
    enzymes: List[str] = []
    for match in ENZYME_RE.finditer(text or ""):
        code = canonical_enzyme(match.group(0))
        if code not in enzymes:
            enzymes.append(code)
    return enzymes


def extract_mechanism(text: str, enzymes: Optional[List[str]] = None) -> str:
    lower = (text or "").lower()
    if enzymes is None:
        enzymes = find_enzymes(text)

    mechanisms = []
    if enzymes:
        joined = ", ".join(enzymes)
        if "inhibit" in lower:
            mechanisms.append(f"{joined} inhibition")
        if "induc" in lower:
            mechanisms.append(f"{joined} induction")
        if "substrate" in lower:
            mechanisms.append(f"{joined} substrate competition")

    if "protein binding" in lower or "displace" in lower:
        mechanisms.append("protein binding displacement")
    if "renal clearance" in lower or "renal elimination" in lower or "tubular secretion" in lower:
        mechanisms.append("altered renal clearance")
    if "absorption" in lower:
        mechanisms.append("altered absorption")
    if "distribution" in lower:
        mechanisms.append("altered distribution")

    return "; ".join(mechanisms) if mechanisms else UNKNOWN_MECHANISM


def is_mechanism_known(mechanism: Optional[str]) -> bool:
    return bool(mechanism) and UNKNOWN_MECHANISM not in mechanism.lower()


def classify_interaction_type(mechanism: str) -> str:
    lower = (mechanism or "").lower()
    if any(k in lower for k in ("cyp", "enzyme", "metabolism", "clearance", "absorption",
                                "p-gp", "oatp", "ugt", "transporter")):
        return "pharmacokinetic"
    if "receptor" in lower or "binding" in lower or "pharmacodynamic" in lower:
        return "pharmacodynamic"
    return "mixed"


# ==================== Pharmacokinetics ====================

def _format_amount(value: str, unit: str) -> str:
    return f"{value}-fold" if unit.lower() in ("fold", "-fold", "times") else f"{value}%"


def extract_pharmacokinetics(text: str) -> Optional[Pharmacokinetics]:
    """Capture AUC/Cmax/clearance/half-life changes as "150%" or "3-fold" strings"""
    captured = {}
    for field_name, parameter in PK_PARAMETERS.items():
        for pattern in _pk_patterns(parameter):
            match = pattern.search(text or "")
            if match:
                captured[field_name] = _format_amount(match.group(1), match.group(2))
                break
    return Pharmacokinetics(**captured) if captured else None


def change_to_percent(change: Optional[str]) -> Optional[float]:
    """"150%" -> 150.0, "3-fold" -> 200.0"""
    if not change:
        return None
    match = re.match(r"\s*(\d+(?:\.\d+)?)\s*(%|-?fold)?", change)
    if not match:
        return None
    value = float(match.group(1))
    if match.group(2) and "fold" in match.group(2):
        return (value - 1) * 100
    return value


def auc_increase_percent(text: str) -> Optional[float]:
    """Largest AUC increase stated in text, as a percentage"""
    best = None
    for pattern in _pk_patterns(PK_PARAMETERS["auc_change"], direction="increase"):
        for match in pattern.finditer(text or ""):
            percent = change_to_percent(_format_amount(match.group(1), match.group(2)))
            if percent is not None and (best is None or percent > best):
                best = percent
    return best


# ==================== Severity ====================

def determine_severity(
    text: str,
    keywords: Sequence[Tuple[str, List[str]]] = SEVERITY_KEYWORDS,
    major_threshold: float = SEVERITY_AUC_MAJOR_THRESHOLD,
    moderate_threshold: float = SEVERITY_AUC_MODERATE_THRESHOLD
) -> Severity:
    lower = (text or "").lower()
    severity = Severity.MODERATE
    for level, words in keywords:
        if any(w in lower for w in words):
            severity = Severity(level)
            break

    # Quantitative exposure change can only raise the keyword-based level
    increase = auc_increase_percent(text)
    if increase is not None:
        if increase > major_threshold:
            refined = Severity.MAJOR
        elif increase > moderate_threshold:
            refined = Severity.MODERATE
        else:
            refined = None
        if refined and refined.rank > severity.rank:
            severity = refined

    return severity


# ==================== Study / Evidence ====================

def determine_study_type(
    text: str,
    publication_types: Optional[List[str]] = None,
    tables: Optional[NormalizationTables] = None
) -> str:
    tables = tables or get_tables()
    for pub_type in publication_types or []:
        lower_type = pub_type.lower()
        for key, study_type in tables.publication_type_study_types.items():
            if key in lower_type:
                return study_type

    lower = (text or "").lower()
    for study_type, indicators in tables.study_type_indicators.items():
        if any(i.lower() in lower for i in indicators):
            return study_type

    return StudyType.UNKNOWN.value


def is_high_tier_venue(journal: str, tables: Optional[NormalizationTables] = None) -> bool:
    tables = tables or get_tables()
    lower = (journal or "").lower()
    return any(v in lower for v in tables.high_tier_venues)


def determine_evidence_level(study_type: str, journal: str = "",
                             tables: Optional[NormalizationTables] = None) -> EvidenceLevel:
    if study_type in (StudyType.RCT.value, StudyType.PHARMACOKINETIC.value):
        return EvidenceLevel.HIGH
    if study_type == StudyType.OBSERVATIONAL.value:
        return EvidenceLevel.HIGH if is_high_tier_venue(journal, tables) else EvidenceLevel.MEDIUM
    if study_type == StudyType.CASE_REPORT.value:
        return EvidenceLevel.LOW
    return EvidenceLevel.MEDIUM


def publication_confidence(
    text: str,
    mechanism: str,
    study_type: str,
    journal: str = "",
    has_pk_data: bool = False,
    tables: Optional[NormalizationTables] = None
) -> int:
    w = CONFIDENCE_WEIGHTS
    confidence = w["base"]

    if study_type == StudyType.RCT.value:
        confidence += w["RCT"]
    elif study_type == StudyType.PHARMACOKINETIC.value:
        confidence += w["pharmacokinetic"]
    elif study_type == StudyType.OBSERVATIONAL.value:
        confidence += w["observational"]

    if is_mechanism_known(mechanism):
        confidence += w["mechanism"]
    if is_high_tier_venue(journal, tables):
        confidence += w["high_tier_venue"]
    if len(text or "") > LONG_TEXT_LENGTH:
        confidence += w["long_text"]
    if has_pk_data:
        confidence += w["pk_data"]

    return min(confidence, 100)


def text_confidence(text: str, mechanism: str, study_type: str,
                    enzymes: Optional[List[str]] = None) -> int:
    w = TEXT_CONFIDENCE_WEIGHTS
    confidence = w["base"]
    if is_mechanism_known(mechanism):
        confidence += w["mechanism"]
    if study_type and study_type != StudyType.UNKNOWN.value:
        confidence += w["study_type"]
    if len(text or "") > TEXT_CONFIDENCE_MIN_LENGTH:
        confidence += w["text_length"]
    if enzymes is None:
        enzymes = find_enzymes(text)
    if enzymes:
        confidence += w["enzymes"]
    return min(confidence, 100)


# ==================== Descriptive Fields ====================

def extract_effect(text: str) -> str:
    lower = (text or "").lower()
    effects = []
    if "increase" in lower and ("exposure" in lower or "concentration" in lower):
        effects.append("increased drug exposure")
    if "decrease" in lower and ("exposure" in lower or "concentration" in lower):
        effects.append("decreased drug exposure")
    if "decrease" in lower and "efficacy" in lower:
        effects.append("decreased efficacy")
    if "toxicity" in lower or "adverse" in lower:
        effects.append("increased toxicity risk")
    return "; ".join(effects)


def extract_clinical_significance(text: str) -> str:
    lower = (text or "").lower()
    if "not clinically relevant" in lower or "not clinically significant" in lower:
        return "not clinically significant"
    if "clinically significant" in lower or "clinically relevant" in lower:
        return "clinically significant"
    return "clinical significance unclear"


def extract_management(text: str) -> str:
    lower = (text or "").lower()
    if "contraindicated" in lower:
        return "avoid combination"
    if "reduce dose" in lower or "dose reduction" in lower or "adjust dose" in lower \
            or "dose adjustment" in lower:
        return "adjust dose"
    if "avoid" in lower:
        return "avoid combination"
    if "monitor" in lower:
        return "monitor"
    return ""


def extract_population_size(text: str) -> Optional[int]:
    match = POPULATION_RE.search(text or "")
    return int(match.group(1)) if match else None


def extract_statistical_significance(text: str) -> Optional[str]:
    match = P_VALUE_RE.search(text or "")
    if not match:
        return None
    op = "<" if match.group(1) in ("<", "≤") else match.group(1)
    return f"p {op} {match.group(2)}"
