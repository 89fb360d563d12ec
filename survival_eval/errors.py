"""Exception types raised by the survival evaluation engine.

Two failure classes reach callers:

- ``ConfigurationError`` — raised while configuring a metric (unknown
  distribution family, non-positive scale, malformed option value).
- ``InputError`` — raised while evaluating (empty labels, length mismatches,
  invalid censoring bounds, negative weights).

Numerical edge cases (tail cancellation, overflow) are handled locally by
stable formulas and never raised.
"""

from __future__ import annotations


class SurvivalEvalError(Exception):
    """Base class for all errors raised by survival_eval."""


class ConfigurationError(SurvivalEvalError, ValueError):
    """Invalid metric configuration. Raised at configure time."""


class InputError(SurvivalEvalError, ValueError):
    """Invalid evaluation input. Aborts the whole evaluation."""


__all__ = ["SurvivalEvalError", "ConfigurationError", "InputError"]
