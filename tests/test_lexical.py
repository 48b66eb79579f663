"""
DDI Evidence Mining Engine - Lexical Extraction Tests
Sprint 2: Rule-based extraction from free text
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from src.core.models import Severity, EvidenceLevel
from src.extraction import lexical


STATIN_TEXT = ("Strong CYP3A4 inhibitors such as ketoconazole and clarithromycin "
               "increased simvastatin AUC by 3-fold.")


class TestScreening:

    def test_contains_ddi_content(self):
        assert lexical.contains_ddi_content("A drug-drug interaction study in volunteers")
        assert lexical.contains_ddi_content("Potent cytochrome P450 inhibitor")
        assert not lexical.contains_ddi_content("Weather was sunny today")
        assert not lexical.contains_ddi_content("")

    def test_custom_keywords(self):
        assert lexical.contains_ddi_content("Monitor closely", keywords=["monitor"])


class TestDrugMentions:
    """Candidate drug name detection"""

    def test_generic_suffixes_and_lists(self):
        mentions = lexical.find_drug_mentions(STATIN_TEXT)
        assert mentions == ["ketoconazole", "clarithromycin", "simvastatin"]

    def test_parenthetical_mention(self):
        mentions = lexical.find_drug_mentions("The anticoagulant (warfarin) was co-administered.")
        assert "warfarin" in mentions

    def test_mentions_are_deduplicated(self):
        mentions = lexical.find_drug_mentions("Fluconazole and fluconazole again with FLUCONAZOLE")
        assert mentions == ["fluconazole"]

    def test_is_likely_drug_name(self):
        assert lexical.is_likely_drug_name("warfarin")
        assert not lexical.is_likely_drug_name("abc")
        assert not lexical.is_likely_drug_name("12345")
        assert not lexical.is_likely_drug_name("patients")
        assert not lexical.is_likely_drug_name("CYP3A4")
        assert not lexical.is_likely_drug_name("a" * 26)


class TestEnzymesAndMechanism:

    def test_find_enzymes_canonical(self):
        text = "Substrate of cytochrome P450 3A4, CYP 2D6 and P-glycoprotein; also OATP1B1."
        assert lexical.find_enzymes(text) == ["CYP3A4", "CYP2D6", "P-gp", "OATP1B1"]

    def test_enzyme_mechanism(self):
        assert lexical.extract_mechanism(STATIN_TEXT) == "CYP3A4 inhibition"

    def test_induction_and_absorption(self):
        text = "Rifampin induces CYP3A4 and reduces absorption of the substrate."
        mechanism = lexical.extract_mechanism(text)
        assert "CYP3A4 induction" in mechanism
        assert "CYP3A4 substrate competition" in mechanism
        assert "altered absorption" in mechanism

    def test_non_enzymatic_mechanisms(self):
        assert lexical.extract_mechanism("Displacement from protein binding sites") == \
            "protein binding displacement"
        assert lexical.extract_mechanism("Reduced renal clearance of the drug") == \
            "altered renal clearance"

    def test_unknown_mechanism(self):
        assert lexical.extract_mechanism("No details were reported") == "unknown"
        assert not lexical.is_mechanism_known("unknown")
        assert not lexical.is_mechanism_known("")
        assert lexical.is_mechanism_known("CYP3A4 inhibition")

    def test_classify_interaction_type(self):
        assert lexical.classify_interaction_type("CYP3A4 inhibition") == "pharmacokinetic"
        assert lexical.classify_interaction_type("additive pharmacodynamic effects") == "pharmacodynamic"
        assert lexical.classify_interaction_type("unknown") == "mixed"


class TestPharmacokinetics:

    def test_fold_change(self):
        pk = lexical.extract_pharmacokinetics(STATIN_TEXT)
        assert pk is not None
        assert pk.auc_change == "3-fold"
        assert pk.cmax_change is None

    def test_percent_changes(self):
        text = "The AUC increased by 150% and Cmax increased by 45% while clearance decreased by 60%."
        pk = lexical.extract_pharmacokinetics(text)
        assert pk.auc_change == "150%"
        assert pk.cmax_change == "45%"
        assert pk.clearance_change == "60%"

    def test_no_pk_data(self):
        assert lexical.extract_pharmacokinetics("No pharmacokinetic data were collected") is None

    def test_change_to_percent(self):
        assert lexical.change_to_percent("150%") == 150.0
        assert lexical.change_to_percent("3-fold") == 200.0
        assert lexical.change_to_percent(None) is None
        assert lexical.change_to_percent("n/a") is None


class TestSeverity:
    """Keyword severity with upward AUC refinement"""

    def test_keywords(self):
        assert lexical.determine_severity("Concomitant use is contraindicated.") == Severity.MAJOR
        assert lexical.determine_severity("A marked rise in levels") == Severity.MODERATE
        assert lexical.determine_severity("A slight rise in levels") == Severity.MINOR
        assert lexical.determine_severity("Levels changed") == Severity.MODERATE

    def test_auc_refinement_raises(self):
        assert lexical.determine_severity("A slight AUC increase of 250% was seen") == Severity.MAJOR
        assert lexical.determine_severity("A slight AUC increase of 150% was seen") == Severity.MODERATE

    def test_auc_refinement_never_lowers(self):
        text = "Use is contraindicated although the AUC increased by 20%."
        assert lexical.determine_severity(text) == Severity.MAJOR

    def test_fold_conversion_threshold(self):
        # 3-fold is exactly 200%, which is not above the major threshold
        assert lexical.determine_severity(STATIN_TEXT) == Severity.MODERATE
        assert lexical.determine_severity(STATIN_TEXT.replace("3-fold", "5-fold")) == Severity.MAJOR

    def test_custom_thresholds(self):
        text = "The AUC increased by 60%."
        assert lexical.determine_severity(text, moderate_threshold=50, major_threshold=55) == Severity.MAJOR


class TestStudyAndEvidence:

    def test_publication_types_win(self):
        study = lexical.determine_study_type("retrospective cohort", ["Randomized Controlled Trial"])
        assert study == "RCT"

    def test_text_indicators(self):
        assert lexical.determine_study_type("A retrospective cohort analysis") == "observational"
        assert lexical.determine_study_type("Human liver microsome incubations in vitro") == "in_vitro"
        assert lexical.determine_study_type("Nothing to see") == "unknown"

    def test_evidence_level(self):
        assert lexical.determine_evidence_level("RCT") == EvidenceLevel.HIGH
        assert lexical.determine_evidence_level("pharmacokinetic") == EvidenceLevel.HIGH
        assert lexical.determine_evidence_level("observational", "The Lancet") == EvidenceLevel.HIGH
        assert lexical.determine_evidence_level("observational", "Drug Metab Dispos") == EvidenceLevel.MEDIUM
        assert lexical.determine_evidence_level("case_report") == EvidenceLevel.LOW
        assert lexical.determine_evidence_level("unknown") == EvidenceLevel.MEDIUM

    def test_publication_confidence(self):
        assert lexical.publication_confidence("short", "CYP3A4 inhibition", "RCT") == 90
        assert lexical.publication_confidence("short", "unknown", "unknown") == 50
        capped = lexical.publication_confidence(
            "x" * 300, "CYP3A4 inhibition", "RCT", "NEJM", has_pk_data=True)
        assert capped == 100

    def test_text_confidence(self):
        assert lexical.text_confidence("short", "unknown", "unknown", []) == 60
        assert lexical.text_confidence("y" * 150, "CYP3A4 inhibition", "RCT", ["CYP3A4"]) == 100


class TestDescriptiveFields:

    def test_effect(self):
        assert lexical.extract_effect("increased plasma exposure") == "increased drug exposure"
        assert lexical.extract_effect("nothing") == ""

    def test_management(self):
        assert lexical.extract_management("Combination is contraindicated") == "avoid combination"
        assert lexical.extract_management("Dose reduction is recommended") == "adjust dose"
        assert lexical.extract_management("Monitor INR") == "monitor"

    def test_clinical_significance(self):
        assert lexical.extract_clinical_significance("not clinically relevant") == \
            "not clinically significant"
        assert lexical.extract_clinical_significance("clinically significant rise") == \
            "clinically significant"

    def test_population_and_p_value(self):
        text = "In 24 healthy volunteers exposure doubled (p < 0.001)."
        assert lexical.extract_population_size(text) == 24
        assert lexical.extract_statistical_significance(text) == "p < 0.001"
        assert lexical.extract_statistical_significance("no statistics") is None
