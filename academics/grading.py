"""
Grade status policy: turns a numeric score into Valid / Retake / NonValid
"""
from decimal import Decimal, InvalidOperation

from django.conf import settings

from .exceptions import InvalidScoreError
from .models import Grade

DEFAULT_PASSING_GRADE = Decimal('60')
DEFAULT_RETAKE_RATIO = Decimal('0.7')
MAX_SCORE = Decimal('100')


def _academics_setting(name, default):
    return getattr(settings, 'ACADEMICS', {}).get(name, default)


def _to_decimal(value):
    if isinstance(value, bool):
        raise InvalidOperation
    if isinstance(value, float):
        # str() keeps the shortest repr, so 59.9 stays 59.9 instead of 59.899999...
        value = str(value)
    return Decimal(value)


def get_passing_grade(ue=None):
    """Passing threshold of a UE, or the configured default"""
    if ue is not None and ue.passing_grade is not None:
        return Decimal(ue.passing_grade)
    return _to_decimal(_academics_setting('DEFAULT_PASSING_GRADE', DEFAULT_PASSING_GRADE))


def get_retake_ratio():
    return _to_decimal(_academics_setting('RETAKE_RATIO', DEFAULT_RETAKE_RATIO))


def _score_in_range(score):
    """Return the score as a Decimal in [0, 100] or raise InvalidScoreError"""
    try:
        value = _to_decimal(score)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidScoreError(score, "Score must be a number")

    if not value.is_finite():
        raise InvalidScoreError(score, "Score must be a number")
    if value < 0 or value > MAX_SCORE:
        raise InvalidScoreError(score, "Score must be between 0 and 100")
    return value


def validate_score(score):
    """Validate a submitted score: in [0, 100] with at most 2 decimals"""
    value = _score_in_range(score)
    if value.normalize().as_tuple().exponent < -2:
        raise InvalidScoreError(score, "Score cannot have more than 2 decimal places")
    return value


def classify(score, passing_grade=None, retake_ratio=None):
    """
    Classify a score against a passing threshold.

    score >= passing_grade                  -> Valid
    retake_ratio * passing_grade <= score   -> Retake
    anything lower                          -> NonValid
    """
    value = _score_in_range(score)

    try:
        threshold = get_passing_grade() if passing_grade is None else _to_decimal(passing_grade)
        ratio = get_retake_ratio() if retake_ratio is None else _to_decimal(retake_ratio)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidScoreError(score, "Passing grade and retake ratio must be numbers")

    if not threshold.is_finite() or threshold <= 0 or threshold > MAX_SCORE:
        raise InvalidScoreError(score, "Passing grade must be greater than 0 and at most 100")
    if not ratio.is_finite() or ratio <= 0 or ratio > 1:
        raise InvalidScoreError(score, "Retake ratio must be in (0, 1]")

    if value >= threshold:
        return Grade.STATUS_VALID
    if value >= threshold * ratio:
        return Grade.STATUS_RETAKE
    return Grade.STATUS_NON_VALID
