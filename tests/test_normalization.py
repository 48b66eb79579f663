"""
DDI Evidence Mining Engine - Normalization Stage Tests
Sprint 4: Standardizer, grouper, merger, scorer, filter and report
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from pydantic import ValidationError

from src.core.models import (
    EvidenceRecord, MergedEvidenceRecord, DrugReference, Interaction, EvidenceDetails,
    ExtractionMetadata, Pharmacokinetics, RejectedRecord,
    Severity, EvidenceLevel, SourceType,
)
from src.normalization.standardizer import EvidenceStandardizer
from src.normalization.grouper import pair_key, group
from src.normalization.merger import merge, merge_groups, union_text
from src.normalization.scoring import QualityScorer
from src.normalization.quality_filter import (
    EvidenceValidator, QualityFilter, QualityFilterOptions, deduplicate,
)
from src.normalization.report import generate_report, reduction_percentage, mechanism_category


def make_record(
    source_id="doc-1",
    drug_a=("warfarin", "11289"),
    drug_b=("fluconazole", "4450"),
    source_type=SourceType.PUBLICATION,
    severity=Severity.MODERATE,
    level=EvidenceLevel.MEDIUM,
    study_type="RCT",
    mechanism="CYP2C9 inhibition",
    pathways=("CYP2C9",),
    effect="",
    text_confidence=None,
    pk=None
) -> EvidenceRecord:
    return EvidenceRecord(
        source_type=source_type,
        source_id=source_id,
        drug_a=DrugReference(*drug_a),
        drug_b=DrugReference(*drug_b),
        interaction=Interaction(mechanism=mechanism, pathways=set(pathways),
                                effect=effect, severity=severity),
        evidence=EvidenceDetails(level=level, study_type=study_type),
        pharmacokinetics=pk,
        extraction_metadata=ExtractionMetadata(text_confidence=text_confidence),
    )


class TestStandardizer:
    """Canonical severity, mechanism, pathways and names"""

    @pytest.fixture
    def standardizer(self):
        return EvidenceStandardizer()

    def test_severity(self, standardizer):
        assert standardizer.standardize_severity("  SEVERE ") == Severity.MAJOR
        assert standardizer.standardize_severity("banana") == Severity.MODERATE
        assert standardizer.standardize_severity(None) == Severity.MODERATE

    def test_mechanism_categories(self, standardizer):
        assert standardizer.standardize_mechanism("Potent CYP inhibition of metabolism") == \
            "enzyme inhibition"
        assert standardizer.standardize_mechanism("P-gp inhibition in the gut") == \
            "transporter inhibition"
        assert standardizer.standardize_mechanism("Chelation in the GI tract") == \
            "absorption interference"

    def test_mechanism_unmatched_and_empty(self, standardizer):
        assert standardizer.standardize_mechanism("  Novel mechanism ") == "Novel mechanism"
        assert standardizer.standardize_mechanism("") == "unknown"
        assert standardizer.standardize_mechanism(None) == "unknown"

    def test_pathways(self, standardizer):
        assert standardizer.standardize_pathways("cytochrome P450 3A4; pgp, 2D6") == \
            {"CYP3A4", "P-gp", "CYP2D6"}
        assert standardizer.standardize_pathways({"CYP3A4", "3A4", "XYZ1"}) == {"CYP3A4", "XYZ1"}
        assert standardizer.standardize_pathways(None) == set()

    def test_drug_names(self, standardizer):
        assert standardizer.standardize_drug_name("  Warfarin   Tablets ") == "warfarin"
        assert standardizer.standardize_drug_name("Ondansetron oral tablet") == "ondansetron"
        assert standardizer.standardize_drug_name("MTX") == "methotrexate"
        assert standardizer.standardize_drug_name("5-FU injection") == "5-fluorouracil"
        assert standardizer.standardize_drug_name(None) == ""

    def test_standardize_returns_copy(self, standardizer):
        record = make_record(drug_a=("Warfarin Tablet", None), mechanism="cyp inhibition")
        result = standardizer.standardize(record)
        assert result is not record
        assert result.drug_a.raw_name == "warfarin"
        assert result.interaction.mechanism == "enzyme inhibition"
        assert record.drug_a.raw_name == "Warfarin Tablet"
        assert record.interaction.mechanism == "cyp inhibition"

    def test_empty_drug_name_fails(self, standardizer):
        record = make_record(drug_b=("   ", None))
        assert standardizer.standardize(record) is None


class TestGrouper:

    def test_pair_key_symmetric(self):
        assert pair_key("11289", "4450") == pair_key("4450", "11289")
        assert pair_key("2", "1") == "1__2"

    def test_reversed_pairs_group_together(self):
        ab = make_record("a", drug_a=("warfarin", "11289"), drug_b=("fluconazole", "4450"))
        ba = make_record("b", drug_a=("fluconazole", "4450"), drug_b=("warfarin", "11289"))
        groups = group([ab, ba])
        assert list(groups) == ["11289__4450"]
        assert len(groups["11289__4450"]) == 2

    def test_unresolved_records_excluded(self):
        unresolved = make_record("u", drug_b=("mystery", None))
        resolved = make_record("r")
        groups = group([unresolved, resolved])
        assert groups == {"11289__4450": [resolved]}
        assert len(group([unresolved])) == 0


class TestQualityScorer:

    @pytest.fixture
    def scorer(self):
        return QualityScorer()

    def test_quality_score(self, scorer):
        record = make_record(severity=Severity.MAJOR, level=EvidenceLevel.HIGH)
        # 0.25*30 + 0.4*30 + 0.3*20 + 2*5 + 10 + 5
        assert scorer.quality_score(record) == pytest.approx(50.5)

    def test_unknown_study_type_uses_default(self, scorer):
        record = make_record(source_type=SourceType.REGULATORY_LABEL, study_type="regulatory_review",
                             severity=Severity.CONTRAINDICATED, level=EvidenceLevel.HIGH)
        assert scorer.quality_score(record) == pytest.approx(56.0)

    def test_monotonic_in_each_tier(self, scorer):
        levels = [scorer.quality_score(make_record(level=l))
                  for l in (EvidenceLevel.LOW, EvidenceLevel.MEDIUM, EvidenceLevel.HIGH)]
        assert levels == sorted(levels)

        severities = [scorer.quality_score(make_record(severity=s))
                      for s in (Severity.MINOR, Severity.MODERATE, Severity.MAJOR,
                                Severity.CONTRAINDICATED)]
        assert severities == sorted(severities)

        sources = [scorer.quality_score(make_record(source_type=s))
                   for s in (SourceType.PUBLICATION, SourceType.CLINICAL_TRIAL,
                             SourceType.REGULATORY_LABEL)]
        assert sources == sorted(sources)

    def test_mechanism_and_pathways_bonus(self, scorer):
        bare = scorer.quality_score(make_record(mechanism="unknown", pathways=()))
        full = scorer.quality_score(make_record())
        assert full - bare == pytest.approx(15)

    def test_composite_default_text_confidence(self, scorer):
        record = make_record(severity=Severity.MAJOR, level=EvidenceLevel.HIGH)
        assert scorer.composite_score(record) == round(0.7 * 50.5 + 0.3 * 50)

    def test_score_stores_fields(self, scorer):
        record = make_record(severity=Severity.MAJOR, level=EvidenceLevel.HIGH, text_confidence=90)
        scorer.score(record)
        assert record.evidence.quality_score == pytest.approx(50.5)
        assert record.evidence.composite_score == round(0.7 * 50.5 + 0.3 * 90)
        assert record.evidence.confidence == round((50.5 + 90) / 2)


class TestMerger:
    """Conflict resolution within one drug-pair group"""

    def test_minor_and_major_merge_to_major(self):
        minor = make_record("doc-1", severity=Severity.MINOR)
        major = make_record("doc-2", severity=Severity.MAJOR)
        merged = merge([minor, major])
        assert isinstance(merged, MergedEvidenceRecord)
        assert merged.interaction.severity == Severity.MAJOR
        assert merged.sources_count == 2
        assert merged.source_id == "doc-2"
        assert merged.extraction_metadata.merged_source_ids == ["doc-1", "doc-2"]

    def test_severity_at_least_group_max(self):
        group_records = [make_record(str(i), severity=s) for i, s in
                         enumerate([Severity.MODERATE, Severity.CONTRAINDICATED, Severity.MINOR])]
        merged = merge(group_records)
        assert merged.interaction.severity.rank >= max(r.interaction.severity.rank for r in group_records)

    def test_order_independent(self):
        a = make_record("a", severity=Severity.MINOR, level=EvidenceLevel.HIGH)
        b = make_record("b", severity=Severity.MAJOR, level=EvidenceLevel.LOW,
                        source_type=SourceType.REGULATORY_LABEL)
        first, second = merge([a, b]), merge([b, a])
        assert first.interaction.severity == second.interaction.severity == Severity.MAJOR
        assert first.evidence.level == second.evidence.level == EvidenceLevel.HIGH
        assert first.source_types == {SourceType.PUBLICATION, SourceType.REGULATORY_LABEL}

    def test_remerge_is_idempotent(self):
        a = make_record("a", severity=Severity.MINOR, level=EvidenceLevel.HIGH)
        b = make_record("b", severity=Severity.MAJOR, level=EvidenceLevel.LOW)
        merged = merge([a, b])
        again = merge([merged, a])
        assert again.interaction.severity == merged.interaction.severity
        assert again.evidence.level == merged.evidence.level
        assert sorted(again.extraction_metadata.merged_source_ids) == ["a", "b"]

    def test_field_unions(self):
        a = make_record("a", mechanism="CYP2C9 inhibition", pathways=("CYP2C9",),
                        effect="increased drug exposure")
        b = make_record("b", mechanism="unknown", pathways=("CYP3A4",),
                        effect="increased toxicity risk",
                        pk=Pharmacokinetics(auc_change="2-fold"))
        merged = merge([a, b])
        assert merged.interaction.mechanism == "CYP2C9 inhibition"
        assert merged.interaction.pathways == {"CYP2C9", "CYP3A4"}
        assert merged.interaction.effect == "increased drug exposure; increased toxicity risk"
        assert merged.pharmacokinetics.auc_change == "2-fold"

    def test_union_text(self):
        assert union_text("A", "B") == "A; B"
        assert union_text("A; B", "B") == "A; B"
        assert union_text("A", "") == "A"
        assert union_text("unknown", "A", "unknown") == "A"
        assert union_text("unknown", "unknown", "unknown") == "unknown"

    def test_single_record_group(self):
        record = make_record("only")
        merged = merge([record])
        assert merged.sources_count == 1
        assert merged.extraction_metadata.merged_source_ids == ["only"]
        assert merged is not record

    def test_base_is_highest_quality(self):
        low = make_record("low", level=EvidenceLevel.LOW, study_type="case_report")
        high = make_record("high", source_type=SourceType.REGULATORY_LABEL)
        assert merge([low, high]).source_id == "high"

    def test_empty_group(self):
        with pytest.raises(ValueError):
            merge([])

    def test_merge_groups_reports_failures(self):
        merged, failures = merge_groups({"1__2": [make_record()], "broken": []})
        assert len(merged) == 1
        assert list(failures) == ["broken"]
        assert "empty" in failures["broken"]


class TestValidatorAndFilter:

    def test_validator(self):
        valid = make_record()
        missing_id = make_record("x", drug_b=("mystery", None))
        no_source = make_record("")
        outcome = EvidenceValidator().validate([valid, missing_id, no_source])
        assert outcome.valid == [valid]
        assert [r.reason for r in outcome.invalid] == [
            "missing resolved drug identifier", "missing source id"]
        assert all(r.stage == "validation" for r in outcome.invalid)

    def test_filter_thresholds(self):
        good = make_record("good")
        good.evidence.composite_score, good.evidence.confidence = 60, 55
        weak = make_record("weak")
        weak.evidence.composite_score, weak.evidence.confidence = 20, 55
        unscored = make_record("unscored")

        outcome = QualityFilter().apply([good, weak, unscored])
        assert outcome.kept == [good]
        assert len(outcome.rejected) == 2
        assert outcome.rejected[0].stage == "quality_filter"
        assert "composite score 20" in outcome.rejected[0].reason

    def test_filter_requirements(self):
        record = make_record(mechanism="unknown", pathways=())
        record.evidence.composite_score, record.evidence.confidence = 80, 80
        assert QualityFilter().check(record) is None
        assert QualityFilter({"require_mechanism": True}).check(record) == \
            "mechanism required but unknown"
        assert QualityFilter({"require_pathways": True}).check(record) == \
            "pathways required but none recorded"

    def test_invalid_options(self):
        with pytest.raises(ValidationError):
            QualityFilterOptions(min_composite_score=150)
        with pytest.raises(ValidationError):
            QualityFilter({"min_confidence": -1})

    def test_deduplicate(self):
        first = make_record("doc-1")
        duplicate = make_record("doc-2")
        other = make_record("doc-3", mechanism="altered absorption")
        assert deduplicate([first, duplicate, other]) == [first, other]


class TestReport:

    def test_reduction_percentage(self):
        assert reduction_percentage(10, 4) == 60
        assert reduction_percentage(0, 0) == 0
        assert reduction_percentage(4, 10) == 0
        assert reduction_percentage(3, 0) == 100

    def test_mechanism_category(self):
        assert mechanism_category("CYP3A4 inhibition; altered absorption") == "CYP3A4 inhibition"
        assert mechanism_category("") == "unknown"

    def test_generate_report(self):
        a = make_record("a", severity=Severity.MAJOR)
        a.evidence.composite_score = 80
        b = make_record("b", mechanism="unknown", source_type=SourceType.REGULATORY_LABEL)
        b.evidence.composite_score = 40
        rejected = [
            RejectedRecord(record=make_record("c"), reason="x", stage="resolution"),
            RejectedRecord(record=make_record("d"), reason="y", stage="quality_filter"),
        ]

        report = generate_report(5, [a, b], rejected)
        assert report.original_count == 5
        assert report.normalized_count == 2
        assert report.reduction_percentage == 60
        assert report.severities == {"major": 1, "moderate": 1}
        assert report.source_types == {"publication": 1, "regulatory_label": 1}
        assert report.average_composite_score == 60
        assert report.high_quality_count == 1
        assert report.mechanism_known_count == 1
        assert report.rejected_by_stage == {"resolution": 1, "quality_filter": 1}

        d = report.to_dict()
        assert d["summary"]["reduction_percentage"] == 60
        assert d["distributions"]["mechanism_types"] == {"CYP2C9 inhibition": 1, "unknown": 1}

    def test_empty_report(self):
        report = generate_report(0, [])
        assert report.reduction_percentage == 0
        assert report.average_composite_score == 0
        assert report.high_quality_count == 0
