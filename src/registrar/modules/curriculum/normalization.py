"""
Canonical Program and Year-Level Values

Program names and year levels reach the API in many spellings. They are
parsed here once, when a request enters the system, so that duplicate
detection downstream compares canonical values.

Year levels:
    "1st Year", "1st", "1stYear", "1st year", "first year", "1" -> YearLevel(1)

Programs:
    "BSIT", "BS Information Technology",
    "Bachelor of Science in Information Technology"  -> "BSIT"
"""

import re
from dataclasses import dataclass

# Case-insensitive spelling -> short program code
PROGRAM_CODES: dict[str, str] = {
    "bsit": "BSIT",
    "bs information technology": "BSIT",
    "bachelor of science in information technology": "BSIT",
    "bscs": "BSCS",
    "bs computer science": "BSCS",
    "bachelor of science in computer science": "BSCS",
    "bsis": "BSIS",
    "bs information systems": "BSIS",
    "bachelor of science in information systems": "BSIS",
    "bsba": "BSBA",
    "bs business administration": "BSBA",
    "bachelor of science in business administration": "BSBA",
}

_ORDINAL_WORDS = {
    "first": 1,
    "second": 2,
    "third": 3,
    "fourth": 4,
    "fifth": 5,
    "sixth": 6,
}

_NUMERIC_YEAR = re.compile(r"^(?P<n>\d{1,2})\s*(?:st|nd|rd|th)?\s*(?:year|yr)?$")
_WORD_YEAR = re.compile(r"^(?P<word>[a-z]+)\s*(?:year|yr)?$")


def _squash(value: str | None) -> str:
    return " ".join((value or "").split())


def normalize_program(value: str | None) -> str:
    """Map a program name or code to its short code; unknown input is returned trimmed."""
    text = _squash(value)
    return PROGRAM_CODES.get(text.casefold(), text)


def ordinal_suffix(n: int) -> str:
    if 10 <= n % 100 <= 20:
        return "th"
    return {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")


@dataclass(frozen=True)
class YearLevel:
    """An academic year level, e.g. YearLevel(2) for "2nd Year"."""

    ordinal: int

    @classmethod
    def parse(cls, value: str | None) -> "YearLevel | None":
        """Parse any supported spelling; returns None when the text is not a year level."""
        text = _squash(value).lower()
        if not text:
            return None

        match = _NUMERIC_YEAR.match(text)
        if match:
            n = int(match.group("n"))
            return cls(n) if n > 0 else None

        match = _WORD_YEAR.match(text)
        if match and match.group("word") in _ORDINAL_WORDS:
            return cls(_ORDINAL_WORDS[match.group("word")])

        return None

    @property
    def short_label(self) -> str:
        return f"{self.ordinal}{ordinal_suffix(self.ordinal)}"

    @property
    def label(self) -> str:
        return f"{self.short_label} Year"

    def surface_forms(self) -> list[str]:
        """Spellings reference data may be keyed by, most common first."""
        short = self.short_label
        return [
            f"{short} Year",
            short,
            f"{short}Year",
            f"{short} year",
            f"{short}year",
            str(self.ordinal),
        ]

    def __str__(self) -> str:
        return self.label


def canonical_year_level(value: str | None) -> str:
    """Canonical label for a year level, or the trimmed input if it does not parse."""
    year = YearLevel.parse(value)
    return year.label if year else _squash(value)


def year_level_variants(value: str | None) -> list[str]:
    """
    Ordered, de-duplicated lookup keys for a year level.

    The input as given comes first, followed by every surface form of the
    parsed year level.
    """
    variants: list[str] = []
    raw = _squash(value)
    if raw:
        variants.append(raw)

    year = YearLevel.parse(value)
    if year:
        for form in year.surface_forms():
            if form not in variants:
                variants.append(form)

    return variants
