# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of BlockCast Engine.
#
# BlockCast Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""Unit tests for EvidenceNormalizer (validation, quality, clustering)."""

import pytest

from blockcast_core.errors import InputValidationError
from blockcast_core.evidence.normalizer import EvidenceNormalizer, normalize_content
from blockcast_core.schema.evidence import ContradictionSeverity, ExclusionReason, Stance
from tests.fixtures.market_fixtures import (
    ACADEMIC_LINK,
    EN_NO_TEXT,
    EN_YES_TEXT,
    FR_NO_TEXT,
    GOV_LINK,
    MARKET_ID,
    SOCIAL_LINK,
    make_submission,
)


@pytest.fixture
def normalizer():
    return EvidenceNormalizer()


class TestNormalizeContent:
    def test_collapses_whitespace_and_control_chars(self):
        assert normalize_content("  The\u0000 match\n\n was   won ") == "The match was won"

    def test_empty(self):
        assert normalize_content("") == ""


class TestAnnotate:
    def test_valid_submission(self, normalizer):
        annotated = normalizer.annotate(make_submission(1))
        assert annotated.is_valid is True
        assert annotated.exclusion_reason is None
        assert annotated.avg_credibility == pytest.approx(0.8)
        assert annotated.stance == Stance.YES
        assert annotated.stance_declared is True
        # 0.5 + 0.15 + 0.4 * 0.3 + 0.1 * 0.5 - 0.1 (brief)
        assert annotated.quality_score == pytest.approx(0.72)

    def test_empty_content_is_excluded(self, normalizer):
        annotated = normalizer.annotate(make_submission(1, content="   "))
        assert annotated.is_valid is False
        assert annotated.exclusion_reason == ExclusionReason.EMPTY_CONTENT

    def test_language_mismatch_is_excluded(self, normalizer):
        annotated = normalizer.annotate(make_submission(1, language="fr"))
        assert annotated.is_valid is False
        assert annotated.exclusion_reason == ExclusionReason.LANGUAGE_MISMATCH
        assert annotated.language.detected == "en"

    def test_social_only_brief_evidence_is_low_quality(self, normalizer):
        annotated = normalizer.annotate(make_submission(1, sources=[SOCIAL_LINK]))
        assert annotated.quality_score < 0.4
        assert annotated.exclusion_reason == ExclusionReason.LOW_QUALITY

    def test_undeclared_position_uses_keywords(self, normalizer):
        text = "Officials confirmed the team won and the result was verified by the federation."
        annotated = normalizer.annotate(make_submission(1, content=text, position=None))
        assert annotated.stance == Stance.YES
        assert annotated.stance_declared is False

    def test_attachment_gets_default_authenticity(self, normalizer):
        annotated = normalizer.annotate(make_submission(1, attachment_cid="bafy-photo"))
        assert annotated.authenticity == 0.7

    @pytest.mark.parametrize(
        "base_sources",
        [[], [ACADEMIC_LINK], [SOCIAL_LINK], ["https://www.reuters.com/a", SOCIAL_LINK]],
    )
    def test_adding_government_source_never_lowers_quality(self, normalizer, base_sources):
        before = normalizer.annotate(make_submission(1, sources=base_sources))
        after = normalizer.annotate(make_submission(1, sources=base_sources + [GOV_LINK]))
        assert after.quality_score >= before.quality_score


class TestNormalizeBatch:
    def test_rejects_malformed_payload(self, normalizer):
        with pytest.raises(InputValidationError):
            normalizer.normalize([{"submission_id": "s1", "market_id": MARKET_ID, "unexpected": 1}])

    def test_accepts_dict_payloads(self, normalizer):
        raw = make_submission(1).model_dump(mode="json")
        batch = normalizer.normalize([raw])
        assert batch.market_id == MARKET_ID
        assert len(batch.valid) == 1

    def test_filtered_submissions_are_kept_with_reason(self, normalizer):
        batch = normalizer.normalize([make_submission(1), make_submission(2, content="")])
        assert len(batch.valid) == 1
        assert [a.exclusion_reason for a in batch.filtered_out] == [ExclusionReason.EMPTY_CONTENT]

    def test_same_language_disagreement_is_not_a_contradiction(self, normalizer):
        batch = normalizer.normalize(
            [make_submission(1), make_submission(2, content=EN_NO_TEXT, position=Stance.NO)]
        )
        assert len(batch.clusters) == 1
        assert batch.contradictions == []

    def test_cross_language_contradiction(self, normalizer):
        batch = normalizer.normalize(
            [
                make_submission(1),
                make_submission(2, content=FR_NO_TEXT, language="fr", position=Stance.NO),
            ],
            target_languages=["en", "fr", "sw"],
        )
        assert len(batch.contradictions) == 1
        contradiction = batch.contradictions[0]
        assert contradiction.languages == ["en", "fr"]
        assert contradiction.severity == ContradictionSeverity.MEDIUM
        assert batch.recommendations.requires_human_review is True
        assert batch.recommendations.missing_languages == ["sw"]

    def test_government_citation_makes_contradiction_high(self, normalizer):
        batch = normalizer.normalize(
            [
                make_submission(1, sources=[GOV_LINK]),
                make_submission(2, content=FR_NO_TEXT, language="fr", position=Stance.NO, sources=[GOV_LINK]),
            ]
        )
        assert batch.highest_contradiction == ContradictionSeverity.HIGH

    def test_language_summary(self, normalizer):
        batch = normalizer.normalize([make_submission(1), make_submission(2, language="sw")])
        assert batch.language_summary["en"].valid_count == 1
        assert batch.language_summary["sw"].submission_count == 1
        assert batch.language_summary["sw"].valid_count == 0
        assert batch.language_summary["en"].top_sources == ["research.uonbi.ac.ke"]

    def test_output_is_deterministic(self, normalizer):
        subs = [make_submission(i) for i in range(4)]
        first = normalizer.normalize(subs)
        second = normalizer.normalize(list(reversed(subs)))
        assert first.to_dict() == second.to_dict()
