"""Address, state, ZIP code and property type normalization."""

import re
from typing import Final

# Street suffixes fold onto their abbreviated form so "Peachtree Street" and
# "Peachtree St." compare equal.
STREET_SUFFIXES: Final[tuple[tuple[re.Pattern[str], str], ...]] = tuple(
    (re.compile(pattern), abbrev)
    for pattern, abbrev in (
        (r"\b(street|st)\b", "st"),
        (r"\b(avenue|ave)\b", "ave"),
        (r"\b(road|rd)\b", "rd"),
        (r"\b(boulevard|blvd)\b", "blvd"),
        (r"\b(drive|dr)\b", "dr"),
        (r"\b(lane|ln)\b", "ln"),
        (r"\b(court|ct)\b", "ct"),
        (r"\b(place|pl)\b", "pl"),
        (r"\b(parkway|pkwy)\b", "pkwy"),
        (r"\b(circle|cir)\b", "cir"),
    )
)

_PUNCTUATION: Final = re.compile(r"[^\w\s]", re.ASCII)
_NON_DIGITS: Final = re.compile(r"\D")

PROPERTY_TYPE_SYNONYMS: Final[dict[str, str]] = {
    "multi-family": "apartment",
    "multifamily": "apartment",
    "apartment complex": "apartment",
    "apartments": "apartment",
    "office building": "office",
    "office space": "office",
    "retail space": "retail",
    "shopping center": "retail",
    "strip mall": "retail",
    "warehouse": "industrial",
    "distribution": "industrial",
    "manufacturing": "industrial",
    "flex space": "industrial",
    "mixed use": "mixed-use",
    "mixed-use": "mixed-use",
}

STATE_CODES: Final[dict[str, str]] = {
    "georgia": "GA",
    "florida": "FL",
    "alabama": "AL",
    "tennessee": "TN",
    "north carolina": "NC",
    "south carolina": "SC",
}

MISSING_ZIP_CODE: Final = "00000"


def normalize_address(address: str) -> str:
    """Canonicalize a street address for matching.

    Handles:
    - "250  Tech Square" -> "250 tech square"
    - "1800 Peachtree Street, NE" -> "1800 peachtree st ne"
    - "3350 Riverwood Parkway" -> "3350 riverwood pkwy"

    Args:
        address: Street address as reported by a source.

    Returns:
        Lowercase address with abbreviated suffixes and no punctuation.
    """
    addr = " ".join(address.lower().split())
    for pattern, abbrev in STREET_SUFFIXES:
        addr = pattern.sub(abbrev, addr)
    addr = _PUNCTUATION.sub("", addr)
    return " ".join(addr.split())


def normalize_property_type(property_type: str) -> str:
    """Map a property type synonym onto its canonical category.

    Unknown types pass through lowercased and trimmed.
    """
    normalized = property_type.lower().strip()
    return PROPERTY_TYPE_SYNONYMS.get(normalized, normalized)


def normalize_state(state: str) -> str:
    """Convert a full state name to its 2-letter code.

    Anything not in the table is upper-cased as-is; unknown states are not
    rejected here.
    """
    normalized = state.lower().strip()
    return STATE_CODES.get(normalized, state.strip().upper())


def normalize_zip_code(zip_code: str | None) -> str:
    """Reduce a ZIP code to its 5-digit form, zero padded on the left.

    Examples:
        "ga 30309-1234" -> "30309"
        "abc" -> "00000"
    """
    if not zip_code:
        return MISSING_ZIP_CODE
    digits = _NON_DIGITS.sub("", zip_code)
    return digits[:5].rjust(5, "0")
