import pytest

from crawler.prereq import BASE_CONFIDENCE, parse_prerequisite


class TestEmptyInput:
    """Empty text has nothing to parse."""

    @pytest.mark.parametrize("text", ["", "   ", "\n\t", None])
    def test_empty_returns_none_and_zero(self, text):
        """Blank input gives (None, 0)."""
        parsed, confidence = parse_prerequisite(text)
        assert parsed is None
        assert confidence == 0


class TestStructureDetection:
    """Operators, groups and course codes."""

    def test_no_structure_gets_base_confidence(self):
        """Plain text gets only the base confidence."""
        parsed, confidence = parse_prerequisite("Blah blah no structure")
        assert parsed is not None
        assert confidence == BASE_CONFIDENCE == 0.3
        assert not parsed.has_and
        assert not parsed.has_or
        assert not parsed.has_parentheses
        assert parsed.courses == []
        assert parsed.min_credit is None
        assert parsed.concurrent is None

    def test_and_or_parentheses(self):
        """Operators, grouping and course codes are detected."""
        parsed, confidence = parse_prerequisite("MATH 115 and (EECS 183 or EECS 280)")
        assert parsed.has_and is True
        assert parsed.has_or is True
        assert parsed.has_parentheses is True
        assert parsed.courses == ["MATH 115", "EECS 183", "EECS 280"]
        # 0.3 base + 0.3 for three codes + 0.2 structure
        assert confidence == pytest.approx(0.8)

    def test_raw_is_trimmed(self):
        """Surrounding whitespace is stripped from raw."""
        parsed, _ = parse_prerequisite("   MATH 115  ")
        assert parsed.raw == "MATH 115"

    def test_ampersand_counts_as_and(self):
        """An ampersand is an AND."""
        parsed, _ = parse_prerequisite("MATH 115 & MATH 116")
        assert parsed.has_and is True

    def test_slash_counts_as_or(self):
        """A slash is an OR."""
        parsed, _ = parse_prerequisite("EECS 183/ENGR 101")
        assert parsed.has_or is True

    def test_operators_are_case_insensitive(self):
        """AND / OR match in any case."""
        parsed, _ = parse_prerequisite("MATH 115 AND STATS 250 OR permission")
        assert parsed.has_and is True
        assert parsed.has_or is True

    def test_words_containing_or_are_not_operators(self):
        """Words that merely contain "or" are not OR."""
        parsed, _ = parse_prerequisite("Sophomore standing required")
        assert parsed.has_or is False
        assert parsed.has_and is False

    def test_duplicate_codes_are_kept_in_order(self):
        """Repeated codes are kept as found."""
        parsed, _ = parse_prerequisite("EECS 280, MATH 115, EECS 280")
        assert parsed.courses == ["EECS 280", "MATH 115", "EECS 280"]

    def test_lowercase_codes_are_not_courses(self):
        """Only upper-case subject codes count."""
        parsed, _ = parse_prerequisite("math 115 recommended")
        assert parsed.courses == []


class TestCreditsAndConcurrency:
    """Credit minimums and concurrent enrollment."""

    def test_min_credit(self):
        """A minimum credit count is extracted."""
        parsed, confidence = parse_prerequisite("Minimum 30 credits required")
        assert parsed.min_credit == 30
        assert confidence > BASE_CONFIDENCE
        assert confidence == pytest.approx(0.5)

    def test_concurrent(self):
        """Concurrent enrollment is flagged."""
        parsed, confidence = parse_prerequisite("STATS 250; may be taken concurrently")
        assert parsed.concurrent is True
        # base + concurrency + one code
        assert confidence == pytest.approx(0.5)


class TestConfidenceBounds:
    """Scores stay inside [0, 1]."""

    def test_course_bonus_is_capped(self):
        """Many courses add no more than one bonus."""
        _, five = parse_prerequisite("EECS 183, EECS 203, EECS 280, MATH 115, MATH 116")
        _, three = parse_prerequisite("EECS 183, EECS 203, EECS 280")
        assert five == three == pytest.approx(0.6)

    def test_everything_clamps_to_one(self):
        """Every feature at once still caps at 1.0."""
        text = (
            "Minimum 60 credits and (EECS 281 or EECS 370) and EECS 376, "
            "or concurrent enrollment in EECS 482"
        )
        parsed, confidence = parse_prerequisite(text)
        assert parsed.min_credit == 60
        assert parsed.concurrent is True
        assert confidence == 1.0

    @pytest.mark.parametrize("text", [
        "x",
        "Permission of instructor",
        "MATH 115",
        "Minimum 12 credits; concurrently with PHYSICS 140 & PHYSICS 141 / (MATH 116)",
    ])
    def test_confidence_in_unit_interval(self, text):
        """Confidence stays within [0, 1]."""
        _, confidence = parse_prerequisite(text)
        assert 0 <= confidence <= 1
