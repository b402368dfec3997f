"""
Heuristic prerequisite parser.

Turns free text such as "MATH 115 and (EECS 183 or EECS 280)" into a
ParsedPrerequisite plus a confidence score in [0, 1].

The score is additive and meant for sorting parses for manual review,
not as a probability:

    base                                   0.3
    "minimum N credit(s)"                 +0.2
    "concurrent" / "concurrently"         +0.1
    course codes found                    +min(0.3, 0.1 * count)
    any of and / or / parentheses         +0.2

Empty or whitespace-only input gives (None, 0.0).
"""

import re

from crawler.models import ParsedPrerequisite

BASE_CONFIDENCE = 0.3

AND_RE         = re.compile(r"\b(and|&)\b", re.IGNORECASE)
OR_RE          = re.compile(r"\b(or|/)\b", re.IGNORECASE)
PARENS_RE      = re.compile(r"\([^)]+\)")
COURSE_CODE_RE = re.compile(r"\b[A-Z]{2,6}\s+\d{3,4}\b")
MIN_CREDIT_RE  = re.compile(r"minimum\s+(\d+)\s+credit", re.IGNORECASE)
CONCURRENT_RE  = re.compile(r"concurrent|concurrently", re.IGNORECASE)


def parse_prerequisite(raw_text: str | None) -> tuple[ParsedPrerequisite | None, float]:
    """Return (parsed, confidence) for a raw prerequisite string."""
    if not raw_text or not raw_text.strip():
        return None, 0.0

    text = raw_text.strip()
    confidence = BASE_CONFIDENCE

    parsed = ParsedPrerequisite(
        raw=text,
        has_and=bool(AND_RE.search(text)),
        has_or=bool(OR_RE.search(text)),
        has_parentheses=bool(PARENS_RE.search(text)),
        courses=COURSE_CODE_RE.findall(text),
    )

    credit_match = MIN_CREDIT_RE.search(text)
    if credit_match:
        parsed.min_credit = int(credit_match.group(1))
        confidence += 0.2

    if CONCURRENT_RE.search(text):
        parsed.concurrent = True
        confidence += 0.1

    if parsed.courses:
        confidence += min(0.3, 0.1 * len(parsed.courses))

    if parsed.has_and or parsed.has_or or parsed.has_parentheses:
        confidence += 0.2

    # round() drops float noise from the 0.1 steps
    return parsed, round(min(1.0, max(0.0, confidence)), 4)
