"""Normalization, numeric coercion and placeholder-safe formatting."""

import pytest

from normalize import (
    PLACEHOLDER, fmt_int, fmt_one_decimal, fmt_pct, fmt_pp,
    match_rank, matches, normalize_text, parse_numeric,
)


class TestNormalizeText:

    def test_article_case_and_spacing(self):
        assert normalize_text("The Stormcast Eternals") == normalize_text("stormcast  eternals")
        assert normalize_text("The Stormcast Eternals") == "stormcast eternals"

    def test_punctuation_becomes_space(self):
        assert normalize_text("  Sons-of   Behemat! ") == "sons of behemat"

    def test_non_breaking_space(self):
        assert normalize_text("Lord\u00a0Celestant") == "lord celestant"

    def test_article_only_at_start(self):
        assert normalize_text("Bathe the Blade") == "bathe the blade"

    def test_numeric_keeps_symbols(self):
        assert normalize_text(" 52.5% ", numeric=True) == "52.5%"
        assert normalize_text("-3.0", numeric=True) == "-3.0"

    def test_none(self):
        assert normalize_text(None) == ""


class TestMatching:

    def test_prefix_ranks_ahead_of_substring(self):
        assert match_rank("storm", "Stormcast Eternals") == 0
        assert match_rank("eternals", "Stormcast Eternals") == 1

    def test_no_match(self):
        assert match_rank("seraphon", "Stormcast Eternals") is None
        assert not matches("seraphon", "Stormcast Eternals")

    def test_match_ignores_case_and_punctuation(self):
        assert matches("lord celestant", "Lord-Celestant")


class TestParseNumeric:

    @pytest.mark.parametrize("raw,expected", [
        ("52.3%", 52.3),
        ("52.3 %", 52.3),
        ("1,204", 1204.0),
        ("-4", -4.0),
        (" 7 ", 7.0),
        (12, 12.0),
    ])
    def test_parses(self, raw, expected):
        assert parse_numeric(raw) == pytest.approx(expected)

    @pytest.mark.parametrize("raw", ["", "   ", "%", "abc", "n/a", None, "nan", "inf", float("nan")])
    def test_unavailable(self, raw):
        assert parse_numeric(raw) is None


class TestFormatters:

    def test_pp_sign(self):
        assert fmt_pp(10.0) == "+10pp"
        assert fmt_pp(-10.0) == "-10pp"
        assert fmt_pp(0.0) == "+0pp"

    def test_pp_rounds_half_up(self):
        assert fmt_pp(6.5) == "+7pp"
        assert fmt_pp(-6.5) == "-6pp"

    def test_pct(self):
        assert fmt_pct(52.0) == "52%"
        assert fmt_pct(52.34) == "52.3%"

    def test_int_and_one_decimal(self):
        assert fmt_int(1204.0) == "1,204"
        assert fmt_one_decimal(1.24) == "1.2"
        assert fmt_one_decimal(3.0) == "3"

    @pytest.mark.parametrize("fmt", [fmt_pct, fmt_pp, fmt_int, fmt_one_decimal])
    def test_missing_renders_placeholder(self, fmt):
        assert fmt(None) == PLACEHOLDER
        assert fmt(float("nan")) == PLACEHOLDER
