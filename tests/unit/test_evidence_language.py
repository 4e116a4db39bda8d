# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of BlockCast Engine.
#
# BlockCast Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""Unit tests for function-word language detection and stance keywords."""

from blockcast_core.evidence.language import detect_language, language_scores, validate_language
from blockcast_core.evidence.stance import detect_stance, stance_hits
from blockcast_core.schema.evidence import Stance
from tests.fixtures.market_fixtures import EN_YES_TEXT, FR_NO_TEXT


class TestDetectLanguage:
    def test_english_text(self):
        lang, ratio = detect_language(EN_YES_TEXT)
        assert lang == "en"
        assert ratio > 0.3

    def test_french_text(self):
        lang, _ = detect_language(FR_NO_TEXT)
        assert lang == "fr"

    def test_swahili_text(self):
        lang, _ = detect_language("Timu ya taifa ilishinda fainali na wachezaji wa timu walifurahi sana")
        assert lang == "sw"

    def test_arabic_text(self):
        lang, _ = detect_language("فاز الفريق في المباراة النهائية بعد أن كان متأخرا في الشوط الأول")
        assert lang == "ar"

    def test_no_function_words(self):
        assert detect_language("12345 67890") == (None, 0.0)

    def test_empty_text_scores_zero(self):
        assert language_scores("") == {"en": 0.0, "fr": 0.0, "sw": 0.0, "ar": 0.0}


class TestValidateLanguage:
    def test_matching_declaration_is_valid(self):
        result = validate_language(EN_YES_TEXT, "EN")
        assert result.declared == "en"
        assert result.detected == "en"
        assert result.is_valid is True

    def test_mismatched_declaration_is_invalid(self):
        result = validate_language(EN_YES_TEXT, "fr")
        assert result.detected == "en"
        assert result.is_valid is False

    def test_unsupported_declaration_is_invalid(self):
        result = validate_language(EN_YES_TEXT, "de")
        assert result.is_valid is False

    def test_ratio_must_clear_minimum(self):
        # One function word in twenty-one tokens.
        text = "the " + " ".join(f"word{i}" for i in range(20))
        assert validate_language(text, "en", min_ratio=0.05).is_valid is False
        assert validate_language(text, "en", min_ratio=0.01).is_valid is True


class TestStanceKeywords:
    def test_two_yes_terms_give_yes(self):
        assert detect_stance("The result was confirmed and verified by the referee") == Stance.YES

    def test_single_term_is_neutral_by_default(self):
        assert detect_stance("The result was confirmed") == Stance.NEUTRAL
        assert detect_stance("The result was confirmed", min_hits=1) == Stance.YES

    def test_no_phrase_counts(self):
        yes, no = stance_hits("The final never happened and the claim is false")
        assert no == 2
        assert yes == 1
        assert detect_stance("The final never happened and the claim is false") == Stance.NO

    def test_multilingual_terms(self):
        assert detect_stance("Ndio, ni kweli kabisa") == Stance.YES
        assert detect_stance("Non, c'est faux") == Stance.NO
