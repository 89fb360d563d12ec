"""Censoring regime classification for survival labels.

Each sample carries a ``(lower_bound, upper_bound)`` pair of non-negative
event times. The regime is a pure function of that pair:

    lower == upper (finite)          → uncensored (exact event time)
    upper == +inf, 0 < lower < +inf  → right-censored
    lower == 0, upper finite         → left-censored
    anything else                    → interval-censored

The classification never looks at predictions or the distribution.
"""

from __future__ import annotations

import enum
import logging

import numpy as np

from .errors import InputError

logger = logging.getLogger(__name__)


class CensoringType(enum.IntEnum):
    """Censoring regime of a single label."""

    UNCENSORED = 0
    RIGHT = 1
    LEFT = 2
    INTERVAL = 3


def classify_censoring(lower: float, upper: float) -> CensoringType:
    """Classify a single ``(lower, upper)`` label pair.

    Raises
    ------
    InputError
        If ``lower == upper == +inf`` (no finite information about the event).
    """
    if np.isinf(lower) and np.isinf(upper):
        raise InputError(
            "Degenerate label: lower_bound and upper_bound are both +inf"
        )
    if lower == upper:
        return CensoringType.UNCENSORED
    if np.isinf(upper) and lower > 0:
        return CensoringType.RIGHT
    if lower == 0 and np.isfinite(upper):
        return CensoringType.LEFT
    return CensoringType.INTERVAL


def classify_censoring_array(lower: np.ndarray, upper: np.ndarray) -> np.ndarray:
    """Vectorised ``classify_censoring``.

    Parameters
    ----------
    lower, upper : np.ndarray, shape (N,)
        Label bounds. Assumed already checked by ``validate_bounds``.

    Returns
    -------
    np.ndarray[int8], shape (N,)
        ``CensoringType`` codes per sample.
    """
    lower = np.asarray(lower, dtype=np.float64)
    upper = np.asarray(upper, dtype=np.float64)

    codes = np.full(lower.shape, CensoringType.INTERVAL, dtype=np.int8)
    # Order matters: (0, 0) matches LEFT too, so UNCENSORED must be assigned last
    codes[(lower == 0) & np.isfinite(upper)] = CensoringType.LEFT
    codes[np.isinf(upper) & (lower > 0) & np.isfinite(lower)] = CensoringType.RIGHT
    codes[(lower == upper) & np.isfinite(lower)] = CensoringType.UNCENSORED
    return codes


def validate_bounds(lower: np.ndarray, upper: np.ndarray) -> None:
    """Check label bounds before evaluation.

    Raises
    ------
    InputError
        On length mismatch, NaN bounds, negative bounds, ``upper < lower``,
        or an infinite lower bound.
    """
    lower = np.asarray(lower, dtype=np.float64)
    upper = np.asarray(upper, dtype=np.float64)

    if lower.shape != upper.shape:
        raise InputError(
            f"labels_lower_bound has {lower.size} entries but "
            f"labels_upper_bound has {upper.size}"
        )

    checks = [
        (np.isnan(lower) | np.isnan(upper), "NaN label bound"),
        ((lower < 0) | (upper < 0), "negative label bound"),
        (upper < lower, "upper_bound < lower_bound"),
        (np.isinf(lower) & np.isinf(upper), "lower_bound == upper_bound == +inf"),
        (np.isinf(lower), "infinite lower_bound"),
    ]
    for mask, reason in checks:
        if mask.any():
            idx = int(np.flatnonzero(mask)[0])
            raise InputError(
                f"Invalid label at row {idx}: {reason} "
                f"(lower={lower[idx]!r}, upper={upper[idx]!r}); "
                f"{int(mask.sum())} row(s) affected"
            )


def censoring_summary(lower: np.ndarray, upper: np.ndarray) -> dict[str, int]:
    """Count samples per censoring regime (for logging and reports)."""
    codes = classify_censoring_array(lower, upper)
    return {ct.name.lower(): int((codes == ct).sum()) for ct in CensoringType}


__all__ = [
    "CensoringType",
    "classify_censoring",
    "classify_censoring_array",
    "validate_bounds",
    "censoring_summary",
]
