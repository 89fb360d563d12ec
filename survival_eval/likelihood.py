"""Per-sample AFT negative log-likelihood.

For a sample with bounds ``(lower, upper)``, prediction ``pred`` (log-time)
and scale ``sigma``, with standardized residuals

    z_lo = (log(lower) - pred) / sigma
    z_hi = (log(upper) - pred) / sigma

the contribution is

    uncensored:  -log f(z) + log(sigma * t)        (t = lower = upper)
    right:       -log S(z_lo)
    left:        -log F(z_hi)
    interval:    -log(F(z_hi) - F(z_lo))

The ``log(sigma * t)`` term is the Jacobian of the change of variables from
``log(T)`` to ``T``. The interval difference is formed in log space: between
CDFs when the interval sits in the lower part of the distribution, and between
survival functions (``S(z_lo) - S(z_hi)``) when it sits in the upper tail,
where both CDFs round to 1.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Mapping

import numpy as np

from .censoring import CensoringType, classify_censoring_array
from .distributions import Distribution, DistributionType, get_distribution, parse_distribution_type
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

# Finite stand-in for contributions that come out as NaN/+inf (e.g. an exact
# event at t=0, or an interval whose two CDFs underflow to the same value).
# Larger than any finite contribution reachable with |z| < 1000.
MAX_NEGATIVE_LOG_LIKELIHOOD = 1.0e6

_LN2 = math.log(2.0)

AFT_DISTRIBUTION_KEY = "aft_loss_distribution"
AFT_SCALE_KEY = "aft_loss_distribution_scale"


def log1mexp(x: np.ndarray) -> np.ndarray:
    """Compute ``log(1 - exp(x))`` for ``x <= 0`` without cancellation.

    Uses ``log(-expm1(x))`` near zero and ``log1p(-exp(x))`` further out
    (Mächler, "Accurately computing log(1 - exp(-|a|))", 2012).
    """
    x = np.asarray(x, dtype=np.float64)
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.where(x > -_LN2, np.log(-np.expm1(x)), np.log1p(-np.exp(x)))


def log_interval_probability(
    dist: Distribution, z_lo: np.ndarray, z_hi: np.ndarray
) -> np.ndarray:
    """``log(F(z_hi) - F(z_lo))`` evaluated in log space.

    Parameters
    ----------
    dist : Distribution
        Error distribution.
    z_lo, z_hi : np.ndarray
        Standardized residuals, ``z_lo <= z_hi``. ``z_lo`` may be ``-inf``
        (lower bound 0) and ``z_hi`` may be ``+inf`` (open upper bound).

    Returns
    -------
    np.ndarray
        Log probability mass of the interval. ``-inf`` when the mass
        underflows.
    """
    z_lo = np.asarray(z_lo, dtype=np.float64)
    z_hi = np.asarray(z_hi, dtype=np.float64)

    with np.errstate(invalid="ignore"):
        log_cdf_lo = dist.log_cdf(z_lo)
        log_cdf_hi = dist.log_cdf(z_hi)
        via_cdf = log_cdf_hi + log1mexp(log_cdf_lo - log_cdf_hi)

        log_sf_lo = dist.log_survival(z_lo)
        log_sf_hi = dist.log_survival(z_hi)
        via_survival = log_sf_lo + log1mexp(log_sf_hi - log_sf_lo)

    return np.where(z_lo > 0, via_survival, via_cdf)


def _format_scale(scale: float) -> str:
    """Shortest round-trip text for a scale value ('10', '1.5', '0.001')."""
    if scale.is_integer() and abs(scale) < 1e16:
        return str(int(scale))
    return repr(scale)


def _parse_scale(value: Any) -> float:
    if isinstance(value, bool):
        raise ConfigurationError(
            f"'{AFT_SCALE_KEY}' must be a positive number, got bool ({value!r})"
        )
    try:
        scale = float(value.strip() if isinstance(value, str) else value)
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"'{AFT_SCALE_KEY}' must be a positive number, got "
            f"{type(value).__name__} ({value!r})"
        ) from None
    if not math.isfinite(scale) or scale <= 0:
        raise ConfigurationError(
            f"'{AFT_SCALE_KEY}' must be finite and > 0, got {value!r}"
        )
    return scale


@dataclass(frozen=True)
class AFTParam:
    """Frozen AFT configuration: error distribution and its scale."""

    distribution: DistributionType = DistributionType.NORMAL
    scale: float = 1.0

    def __post_init__(self):
        object.__setattr__(self, "distribution", parse_distribution_type(self.distribution))
        object.__setattr__(self, "scale", _parse_scale(self.scale))

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> "AFTParam":
        """Build from a string-keyed option map.

        Recognized keys: ``aft_loss_distribution``, ``aft_loss_distribution_scale``.
        Missing keys keep their defaults (normal, 1.0).

        Raises
        ------
        ConfigurationError
            On unknown keys, unknown family, or invalid scale.
        """
        known = {AFT_DISTRIBUTION_KEY, AFT_SCALE_KEY}
        unknown = sorted(set(options) - known)
        if unknown:
            raise ConfigurationError(
                f"Unknown AFT option(s): {unknown}. Recognized: {sorted(known)}"
            )
        kwargs = {}
        if AFT_DISTRIBUTION_KEY in options:
            kwargs["distribution"] = options[AFT_DISTRIBUTION_KEY]
        if AFT_SCALE_KEY in options:
            kwargs["scale"] = options[AFT_SCALE_KEY]
        return cls(**kwargs)

    def to_dict(self) -> dict[str, str]:
        """Serialize with string values, as emitted by ``save_config``."""
        return {
            AFT_DISTRIBUTION_KEY: self.distribution.value,
            AFT_SCALE_KEY: _format_scale(self.scale),
        }


class AFTLoss:
    """Vectorised AFT negative log-likelihood for a frozen ``AFTParam``."""

    def __init__(self, param: AFTParam):
        self.param = param
        self.dist = get_distribution(param.distribution)
        self.sigma = param.scale

    def loss(
        self,
        lower: np.ndarray,
        upper: np.ndarray,
        preds: np.ndarray,
    ) -> np.ndarray:
        """Per-sample negative log-likelihood.

        Parameters
        ----------
        lower, upper : np.ndarray, shape (N,)
            Validated label bounds.
        preds : np.ndarray, shape (N,)
            Predicted log-times.

        Returns
        -------
        np.ndarray, shape (N,)
            Finite contributions; non-finite values are clamped to
            ``MAX_NEGATIVE_LOG_LIKELIHOOD``.
        """
        lower = np.asarray(lower, dtype=np.float64)
        upper = np.asarray(upper, dtype=np.float64)
        preds = np.asarray(preds, dtype=np.float64)
        sigma = self.sigma
        dist = self.dist

        codes = classify_censoring_array(lower, upper)
        out = np.empty(lower.shape, dtype=np.float64)

        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            z_lo = (np.log(lower) - preds) / sigma
            z_hi = (np.log(upper) - preds) / sigma

            m = codes == CensoringType.UNCENSORED
            out[m] = -dist.log_pdf(z_lo[m]) + np.log(sigma * lower[m])

            m = codes == CensoringType.RIGHT
            out[m] = -dist.log_survival(z_lo[m])

            m = codes == CensoringType.LEFT
            out[m] = -dist.log_cdf(z_hi[m])

            m = codes == CensoringType.INTERVAL
            out[m] = -log_interval_probability(dist, z_lo[m], z_hi[m])

        return clamp_contributions(out)


def clamp_contributions(values: np.ndarray) -> np.ndarray:
    """Replace NaN/+inf and oversize values by ``MAX_NEGATIVE_LOG_LIKELIHOOD``."""
    bad = ~np.isfinite(values) | (values > MAX_NEGATIVE_LOG_LIKELIHOOD)
    if bad.any():
        logger.debug(
            f"Clamped {int(bad.sum())}/{values.size} non-finite or oversize "
            f"AFT contributions to {MAX_NEGATIVE_LOG_LIKELIHOOD:g}"
        )
        values = np.where(bad, MAX_NEGATIVE_LOG_LIKELIHOOD, values)
    return values


__all__ = [
    "MAX_NEGATIVE_LOG_LIKELIHOOD",
    "AFT_DISTRIBUTION_KEY",
    "AFT_SCALE_KEY",
    "AFTParam",
    "AFTLoss",
    "log1mexp",
    "log_interval_probability",
    "clamp_contributions",
]
