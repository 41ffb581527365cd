"""
Choice to points conversion.

Pure functions: no I/O, no rounding. Rounding happens once, when a
percentage is produced by the section or audit aggregator.
"""
from typing import Iterable, Optional, Union

from app.core.errors import ValidationError
from app.services.records import BlankChoicePolicy, Choice

DEFAULT_ANSWER_DOMAIN = (Choice.YES.value, Choice.PARTIALLY.value, Choice.NO.value, Choice.NA.value)

CHOICE_FACTORS = {
    Choice.YES: 1.0,
    Choice.PARTIALLY: 0.5,
    Choice.NO: 0.0,
}

_ALIASES = {
    "yes": Choice.YES,
    "y": Choice.YES,
    "partially": Choice.PARTIALLY,
    "partial": Choice.PARTIALLY,
    "no": Choice.NO,
    "n": Choice.NO,
    "na": Choice.NA,
    "n/a": Choice.NA,
    "n.a.": Choice.NA,
    "not applicable": Choice.NA,
}


def _lookup(label: str) -> Optional[Choice]:
    return _ALIASES.get(" ".join(label.strip().lower().split()))


def parse_choice(raw: Optional[str], answer_domain: Iterable[str] = DEFAULT_ANSWER_DOMAIN) -> Optional[Choice]:
    """
    Normalize a raw answer label.

    Args:
        raw: Label as stored or submitted ("yes", "N/A", "Not Applicable", ...)
        answer_domain: Labels allowed for the item; empty means the default domain

    Returns:
        The Choice, or None when the label is blank

    Raises:
        ValidationError: Label is unknown or not allowed for this item
    """
    if raw is None or not str(raw).strip():
        return None

    choice = _lookup(str(raw))
    if choice is None:
        raise ValidationError(f"Unrecognized choice: {raw!r}")

    allowed = set()
    for label in answer_domain or DEFAULT_ANSWER_DOMAIN:
        parsed = _lookup(label)
        if parsed is not None:
            allowed.add(parsed)
    if allowed and choice not in allowed:
        raise ValidationError(f"Choice {raw!r} is not in the answer domain {sorted(c.value for c in allowed)}")

    return choice


def validate_weight(weight) -> float:
    """Return the weight as float, rejecting non-numeric and non-positive values."""
    try:
        value = float(weight)
    except (TypeError, ValueError):
        raise ValidationError(f"Weight is not a number: {weight!r}")
    if value != value or value <= 0:
        raise ValidationError(f"Weight must be positive, got {weight!r}")
    return value


def score_choice(
    choice: Union[Choice, str, None],
    weight,
    blank_policy: BlankChoicePolicy = BlankChoicePolicy.WORST,
) -> Optional[float]:
    """
    Convert an answer to points.

    Yes earns the full weight, Partially half, No zero. NA returns None so
    the item stays out of the denominator. A blank answer scores 0 under the
    WORST policy and None under EXCLUDE.

    Raises:
        ValidationError: Unknown label or non-positive weight
    """
    value = validate_weight(weight)

    if isinstance(choice, str) and not isinstance(choice, Choice):
        choice = parse_choice(choice)

    if choice is None:
        if BlankChoicePolicy(blank_policy) == BlankChoicePolicy.EXCLUDE:
            return None
        return 0.0

    if choice == Choice.NA:
        return None

    return value * CHOICE_FACTORS[choice]
