"""
DDI Evidence Mining Engine - Lookup Tables
Sprint 1: Keyword and Synonym Tables

Every keyword list and synonym map used by extraction and standardization
lives here so the tables can be reviewed, overridden from JSON, and tested
on their own.
"""
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# ==================== Severity ====================

SEVERITY_SYNONYMS = {
    "contraindicated": "contraindicated",
    "avoid": "contraindicated",
    "major": "major",
    "high": "major",
    "severe": "major",
    "significant": "major",
    "moderate": "moderate",
    "medium": "moderate",
    "caution": "moderate",
    "monitor": "moderate",
    "minor": "minor",
    "low": "minor",
    "mild": "minor",
    "minimal": "minor",
}

EVIDENCE_LEVEL_SYNONYMS = {
    "high": "high",
    "strong": "high",
    "established": "high",
    "medium": "medium",
    "moderate": "medium",
    "probable": "medium",
    "low": "low",
    "weak": "low",
    "suspected": "low",
    "possible": "low",
}

# Text keywords for the extraction severity heuristic, checked in order
SEVERITY_KEYWORDS = [
    ("major", ["contraindicated", "avoid"]),
    ("moderate", ["significant", "marked"]),
    ("minor", ["minor", "slight"]),
]

# Regulatory label terminology, checked in order
LABEL_SEVERITY_KEYWORDS = [
    ("major", ["contraindicated", "avoid", "not recommended", "boxed warning"]),
    ("moderate", ["warning", "caution", "monitor"]),
    ("minor", ["consider", "may"]),
]

# Trial protocol terminology, checked in order
TRIAL_SEVERITY_KEYWORDS = [
    ("contraindicated", ["contraindicated", "prohibited", "forbidden", "not permitted"]),
    ("major", ["strong inhibitor", "potent inhibitor", "avoid", "significant", "major"]),
    ("moderate", ["moderate inhibitor", "caution", "monitor", "consider"]),
    ("minor", ["weak inhibitor", "minor", "minimal"]),
]


# ==================== Mechanism ====================

MECHANISM_PHRASES = {
    "enzyme_inhibition": [
        "enzyme inhibition", "metabolic inhibition", "inhibits metabolism",
        "cyp inhibition", "cytochrome inhibition",
    ],
    "enzyme_induction": [
        "enzyme induction", "metabolic induction", "induces metabolism",
        "cyp induction", "cytochrome induction",
    ],
    "transporter_inhibition": [
        "transporter inhibition", "p-gp inhibition", "oatp inhibition",
        "efflux inhibition", "uptake inhibition",
    ],
    "protein_binding_displacement": [
        "protein binding displacement", "protein displacement",
        "albumin binding", "plasma protein binding",
    ],
    "absorption_interference": [
        "absorption interference", "altered absorption", "chelation",
        "gastric ph alteration",
    ],
    "distribution_interference": [
        "altered distribution", "distribution interference",
    ],
    "renal_clearance_alteration": [
        "renal clearance", "renal elimination", "kidney clearance",
        "tubular secretion", "glomerular filtration",
    ],
    "pharmacodynamic_interaction": [
        "pharmacodynamic", "additive effects", "synergistic effects",
        "antagonistic effects", "receptor interaction",
    ],
}

UNKNOWN_MECHANISM = "unknown"


# ==================== Enzymes / Transporters ====================

ENZYME_SYNONYMS = {
    "CYP3A4": ["CYP3A4", "3A4", "cytochrome P450 3A4"],
    "CYP2D6": ["CYP2D6", "2D6", "cytochrome P450 2D6"],
    "CYP2C9": ["CYP2C9", "2C9", "cytochrome P450 2C9"],
    "CYP2C19": ["CYP2C19", "2C19", "cytochrome P450 2C19"],
    "CYP1A2": ["CYP1A2", "1A2", "cytochrome P450 1A2"],
    "P-gp": ["P-glycoprotein", "Pglycoprotein", "P-gp", "Pgp", "MDR1", "ABCB1"],
    "OATP1B1": ["OATP1B1", "SLCO1B1"],
    "OATP1B3": ["OATP1B3", "SLCO1B3"],
    "UGT1A1": ["UGT1A1", "UDP-glucuronosyltransferase 1A1"],
    "BCRP": ["BCRP", "ABCG2", "breast cancer resistance protein"],
}

ENZYME_PATTERNS = [
    r"CYP\s*[0-9][A-Z][0-9]+",
    r"cytochrome\s+P450\s+[0-9][A-Z][0-9]+",
    r"P-?glycoprotein|P-?gp\b",
    r"OATP[0-9A-Z]+",
    r"UGT[0-9A-Z]+",
    r"\bBCRP\b",
    r"\bMDR1\b",
    r"\bMATE[0-9]*\b",
    r"\bOCT[0-9]+\b",
]


# ==================== Drug Names ====================

DRUG_ABBREVIATIONS = {
    "5-fu": "5-fluorouracil",
    "ctx": "cyclophosphamide",
    "mtx": "methotrexate",
    "cddp": "cisplatin",
    "ara-c": "cytarabine",
    "6-mp": "mercaptopurine",
    "asa": "aspirin",
}

DOSAGE_FORM_SUFFIXES = ["tablet", "capsule", "injection", "oral", "iv"]

GENERIC_SUFFIXES = [
    "mycin", "cillin", "navir", "tinib", "mab", "zole", "pril", "sartan",
    "statin", "afenib", "sone", "olol", "floxacin", "azepam", "parin",
    "platin", "taxel", "rubicin", "fibrate", "dipine",
]

BRAND_SUFFIXES = [
    "tra", "cel", "nex", "sor", "bev", "rit", "ima", "das", "ofa", "sun", "ven",
]

NON_DRUG_WORDS = {
    "study", "studies", "patient", "patients", "group", "groups", "dose",
    "doses", "treatment", "therapy", "subjects", "healthy", "volunteers",
    "placebo", "control", "results", "methods", "background", "conclusion",
    "conclusions", "however", "although", "therefore", "table", "figure",
    "data", "analysis", "clinical", "trial", "plasma", "serum", "baseline",
    "interaction", "interactions", "inhibitors", "inducers", "substrates",
    "drugs", "medications", "agents", "other", "several", "various",
    "auc", "cmax", "ratio", "mean", "range", "median",
    # capitalized words that look like brand names
    "given", "even", "seven", "eleven", "extra", "merit", "spirit", "excel",
}

MIN_DRUG_NAME_LENGTH = 4
MAX_DRUG_NAME_LENGTH = 25


# ==================== Literature ====================

DDI_KEYWORDS = [
    "drug interaction", "drug-drug interaction", "DDI",
    "cytochrome P450", "CYP interaction", "pharmacokinetic interaction",
    "concomitant medication", "co-administration",
    "enzyme inhibition", "enzyme induction",
    "P-glycoprotein interaction", "transporter interaction",
]

LABEL_DDI_KEYWORDS = [
    "co-administration", "coadministration", "concomitant", "concurrent use",
    "drug interaction", "drug-drug interaction", "DDI",
    "cytochrome", "CYP", "P-glycoprotein", "P-gp",
    "inhibitor", "inducer", "substrate",
    "contraindicated", "avoid", "caution",
    "monitor", "adjust dose", "reduce dose",
    "increase exposure", "decrease exposure",
    "clearance", "metabolism", "elimination",
]

TRIAL_DDI_KEYWORDS = [
    "concomitant", "concurrent", "co-administration", "drug interaction",
    "prohibited medication", "excluded medication", "CYP inhibitor", "CYP inducer",
    "strong inhibitor", "moderate inhibitor", "enzyme inhibitor", "enzyme inducer",
    "contraindicated", "avoid combination", "use with caution",
    "P-glycoprotein", "P-gp", "transporter", "metabolic", "clearance",
]

STUDY_TYPE_INDICATORS = {
    "RCT": ["randomized", "randomised", "controlled trial", "RCT", "clinical trial"],
    "observational": ["observational", "cohort", "case-control", "retrospective"],
    "case_report": ["case report", "case series", "case study"],
    "in_vitro": ["in vitro", "cell culture", "microsome"],
    "pharmacokinetic": ["pharmacokinetic", "PK study", "bioequivalence"],
}

PUBLICATION_TYPE_STUDY_TYPES = {
    "randomized controlled trial": "RCT",
    "case reports": "case_report",
    "case report": "case_report",
    "observational study": "observational",
    "in vitro techniques": "in_vitro",
}

HIGH_TIER_VENUES = ["nature", "science", "cell", "nejm", "new england journal",
                    "lancet", "jama", "bmj"]

RELEVANT_SECTIONS = ["method", "result", "discussion", "conclusion",
                     "interaction", "pharmacokinetic", "safety"]

LABEL_SECTIONS = [
    "drug_interactions", "contraindications", "warnings_and_cautions",
    "clinical_pharmacology", "pharmacokinetics", "warnings", "precautions",
    "boxed_warning",
]


@dataclass
class NormalizationTables:
    """Bundle of lookup tables injected into extractors and the standardizer"""
    severity_synonyms: Dict[str, str] = field(default_factory=lambda: dict(SEVERITY_SYNONYMS))
    evidence_level_synonyms: Dict[str, str] = field(default_factory=lambda: dict(EVIDENCE_LEVEL_SYNONYMS))
    mechanism_phrases: Dict[str, List[str]] = field(default_factory=lambda: dict(MECHANISM_PHRASES))
    enzyme_synonyms: Dict[str, List[str]] = field(default_factory=lambda: dict(ENZYME_SYNONYMS))
    drug_abbreviations: Dict[str, str] = field(default_factory=lambda: dict(DRUG_ABBREVIATIONS))
    dosage_form_suffixes: List[str] = field(default_factory=lambda: list(DOSAGE_FORM_SUFFIXES))
    ddi_keywords: List[str] = field(default_factory=lambda: list(DDI_KEYWORDS))
    label_ddi_keywords: List[str] = field(default_factory=lambda: list(LABEL_DDI_KEYWORDS))
    trial_ddi_keywords: List[str] = field(default_factory=lambda: list(TRIAL_DDI_KEYWORDS))
    study_type_indicators: Dict[str, List[str]] = field(default_factory=lambda: dict(STUDY_TYPE_INDICATORS))
    publication_type_study_types: Dict[str, str] = field(
        default_factory=lambda: dict(PUBLICATION_TYPE_STUDY_TYPES))
    high_tier_venues: List[str] = field(default_factory=lambda: list(HIGH_TIER_VENUES))
    non_drug_words: set = field(default_factory=lambda: set(NON_DRUG_WORDS))

    @classmethod
    def from_json(cls, filepath: str) -> "NormalizationTables":
        """Load tables from a JSON file; keys that are absent keep their defaults"""
        logger.info(f"Loading normalization tables from JSON: {filepath}")

        with open(filepath, 'r', encoding='utf-8') as f:
            data = json.load(f)

        tables = cls()
        for name, value in data.items():
            if not hasattr(tables, name):
                logger.warning(f"Ignoring unknown table: {name}")
                continue
            if name == "non_drug_words":
                value = set(value)
            setattr(tables, name, value)

        return tables


# Singleton instance
_tables: Optional[NormalizationTables] = None

def get_tables() -> NormalizationTables:
    """Get or create the default tables, honoring DDI_TABLES_PATH"""
    global _tables
    if _tables is None:
        from config.settings import TABLES_PATH
        if TABLES_PATH and Path(TABLES_PATH).exists():
            _tables = NormalizationTables.from_json(TABLES_PATH)
        else:
            _tables = NormalizationTables()
    return _tables
