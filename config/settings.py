"""
DDI Evidence Mining Engine - Configuration Settings
"""
import os

# Normalization tables override (JSON)
TABLES_PATH = os.getenv("DDI_TABLES_PATH", "")

# External repositories
PUBMED_BASE_URL = os.getenv("PUBMED_BASE_URL", "https://eutils.ncbi.nlm.nih.gov/entrez/eutils")
NCBI_API_KEY = os.getenv("NCBI_API_KEY", "")
OPENFDA_LABEL_URL = os.getenv("OPENFDA_LABEL_URL", "https://api.fda.gov/drug/label.json")
CLINICAL_TRIALS_URL = os.getenv("CLINICAL_TRIALS_URL", "https://clinicaltrials.gov/api/v2/studies")
RXNAV_BASE_URL = os.getenv("RXNAV_BASE_URL", "https://rxnav.nlm.nih.gov/REST")
HTTP_USER_AGENT = "DDI-Evidence-Engine/1.0"
HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "30"))

# Rate limiting (NCBI allows 3 requests/second without an API key)
PUBMED_REQUESTS_PER_SECOND = int(os.getenv("PUBMED_REQUESTS_PER_SECOND", "3"))
PUBMED_KEYED_REQUESTS_PER_SECOND = int(os.getenv("PUBMED_KEYED_REQUESTS_PER_SECOND", "10"))
PUBMED_RATE_PERIOD_SECONDS = float(os.getenv("PUBMED_RATE_PERIOD_SECONDS", "1.0"))
FETCH_DELAY_SECONDS = float(os.getenv("FETCH_DELAY_SECONDS", "0.35"))
TRIAL_FETCH_DELAY_SECONDS = float(os.getenv("TRIAL_FETCH_DELAY_SECONDS", "0.2"))
BULK_BATCH_SIZE = int(os.getenv("BULK_BATCH_SIZE", "2"))
BULK_BATCH_DELAY_SECONDS = float(os.getenv("BULK_BATCH_DELAY_SECONDS", "5.0"))

# Cache TTL (seconds)
CACHE_TTL_DOCUMENTS = 7 * 86400   # 7 days
CACHE_TTL_LABELS = 86400          # 24 hours
CACHE_TTL_TRIALS = 86400          # 24 hours

# Extraction defaults
DEFAULT_MAX_RESULTS = 100
DEFAULT_YEAR_RANGE = 10
DEFAULT_LABEL_MAX_RESULTS = 20
DEFAULT_TRIAL_MAX_RESULTS = 50
MIN_TRIAL_TEXT_LENGTH = 20
MIN_TEXT_UNIT_LENGTH = 50
RAW_SNIPPET_LENGTH = 1000

# Severity escalation from captured AUC increase (percent).
# Heuristic values carried over unchanged; pending clinical review.
SEVERITY_AUC_MAJOR_THRESHOLD = float(os.getenv("SEVERITY_AUC_MAJOR_THRESHOLD", "200"))
SEVERITY_AUC_MODERATE_THRESHOLD = float(os.getenv("SEVERITY_AUC_MODERATE_THRESHOLD", "100"))

# Publication confidence weights
CONFIDENCE_WEIGHTS = {
    "base": 50,
    "RCT": 25,
    "pharmacokinetic": 20,
    "observational": 15,
    "mechanism": 15,
    "high_tier_venue": 10,
    "long_text": 5,
    "pk_data": 10,
}
LONG_TEXT_LENGTH = 200

# Text extraction confidence weights
TEXT_CONFIDENCE_WEIGHTS = {
    "base": 60,
    "mechanism": 15,
    "study_type": 10,
    "text_length": 10,
    "enzymes": 5,
}
TEXT_CONFIDENCE_MIN_LENGTH = 100

# Regulatory label confidence weights
LABEL_CONFIDENCE_WEIGHTS = {
    "base": 70,
    "mechanism": 15,
    "major": 10,
    "text_length": 5,
    "enzymes": 10,
}

# Clinical trial text confidence weights
TRIAL_CONFIDENCE_WEIGHTS = {
    "base": 50,
    "mechanism": 20,
    "non_moderate": 15,
    "text_length": 10,
    "enzymes": 15,
}

# Quality scoring weights
QUALITY_WEIGHTS = {
    "source_type": {
        "regulatory_label": 0.4,
        "clinical_trial": 0.3,
        "publication": 0.25,
    },
    "evidence_level": {
        "high": 0.4,
        "medium": 0.25,
        "low": 0.1,
    },
    "study_type": {
        "RCT": 0.3,
        "dedicated_DDI_study": 0.25,
        "pharmacokinetic": 0.25,
        "observational": 0.15,
        "exclusion_criteria": 0.1,
        "case_report": 0.05,
    },
    "default": 0.1,
}
QUALITY_MULTIPLIERS = {
    "source_type": 30,
    "evidence_level": 30,
    "study_type": 20,
    "severity_rank": 5,
    "mechanism_known": 10,
    "pathways_present": 5,
}
COMPOSITE_QUALITY_WEIGHT = 0.7
COMPOSITE_CONFIDENCE_WEIGHT = 0.3
DEFAULT_TEXT_CONFIDENCE = 50

# Quality filter thresholds
MIN_COMPOSITE_SCORE = int(os.getenv("MIN_COMPOSITE_SCORE", "30"))
MIN_CONFIDENCE = int(os.getenv("MIN_CONFIDENCE", "40"))
HIGH_QUALITY_COMPOSITE = 70

# Grouping
PAIR_KEY_SEPARATOR = "__"

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Feature Flags
ENABLE_PUBLICATIONS = True
ENABLE_REGULATORY_LABELS = True
ENABLE_CLINICAL_TRIALS = True
ENABLE_NORMALIZATION = True
