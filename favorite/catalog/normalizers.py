import math
import re
from decimal import Decimal, InvalidOperation

SEVERITY_LEVELS = {
    "None": 0,
    "Mild": 1,
    "Moderate": 2,
    "Severe": 3,
}
UNKNOWN_SEVERITY = 4

MAGNITUDE_SUFFIXES = {
    "k": 10**3,
    "m": 10**6,
    "b": 10**9,
}

LETTER_PATTERN = re.compile(r"[a-zA-Z]")


def normalize_severity(label: str) -> int:
    if not label:
        return UNKNOWN_SEVERITY

    return SEVERITY_LEVELS.get(label.strip(), UNKNOWN_SEVERITY)


def normalize_rating(score_text: str) -> int:
    # raises ValueError on anything that is not a decimal number
    score = float(score_text)
    if math.isnan(score):
        raise ValueError(f"invalid rating: {score_text!r}")

    if score > 8.8:
        return 3
    if score > 7.7:
        return 2
    return 1


def normalize_popularity(vote_text: str) -> float:
    """
    Convert a vote count such as "1.2M", "45K" or "1,234" to a number.

    Only the numeric prefix before the first letter is read; a trailing
    K/M/B (any case) scales it. Raises ValueError when no number is present.
    """
    text = vote_text.strip().replace(",", "")
    number = LETTER_PATTERN.split(text, maxsplit=1)[0].strip()
    multiplier = MAGNITUDE_SUFFIXES.get(text[-1:].lower(), 1)

    try:
        value = Decimal(number) * multiplier
    except InvalidOperation:
        raise ValueError(f"invalid vote count: {vote_text!r}")

    if value < 0 or not value.is_finite():
        raise ValueError(f"invalid vote count: {vote_text!r}")

    return float(value)
