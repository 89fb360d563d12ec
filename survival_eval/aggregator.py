"""Two-phase weighted-mean reduction for survival metrics.

Every survival metric is a weighted mean of per-sample scores:

    metric = sum_i w_i * s_i / sum_i w_i

computed in two phases:

1. Local: (sum w_i * s_i, sum w_i) over the rows visible to this worker.
2. Global: all_reduce(SUM) of the pair across workers, then divide.

Both sums are kept exact. Every finite float64 is an integer multiple of
2**-1127 once its 53-bit mantissa is taken as an integer, so a sum of floats
is an exact Python integer in that fixed-point scale. Integers are split into
32-bit limbs for the all-reduce; limb sums stay below 2**53 and therefore
survive a float64 transport exactly. The final division of two exact integers
is correctly rounded, so the metric does not depend on how rows are sharded,
how many workers there are, or the order rows are visited.

Row split gives each worker disjoint rows, so the partials are summed across
workers. Column split gives every worker all rows' labels: local sums already
are the global sums and no collective is issued.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from .distributed import Communicator, LocalCommunicator
from .info import MetaInfo

logger = logging.getLogger(__name__)

_MANTISSA_BITS = 53
# frexp exponent of the smallest subnormal is -1073; every shift stays >= 1
_EXPONENT_OFFSET = 1074
FIXED_POINT_BITS = _MANTISSA_BITS + _EXPONENT_OFFSET

_SPLIT_BITS = 26
_SPLIT_MASK = (1 << _SPLIT_BITS) - 1

LIMB_BITS = 32
# 2151 bits for the largest double plus headroom for 2**150 rows
NUM_LIMBS = 72
_LIMB_MASK = (1 << LIMB_BITS) - 1


def to_fixed_point(values: np.ndarray) -> int:
    """Exact sum of ``values`` as an integer in units of ``2**-FIXED_POINT_BITS``.

    Raises
    ------
    ValueError
        If any value is NaN or infinite.
    """
    values = np.asarray(values, dtype=np.float64).reshape(-1)
    if values.size == 0:
        return 0
    if not np.isfinite(values).all():
        raise ValueError("Cannot sum non-finite values exactly")

    mantissa, exponent = np.frexp(values)
    ints = np.ldexp(mantissa, _MANTISSA_BITS).astype(np.int64)
    shifts = exponent.astype(np.int64) + _EXPONENT_OFFSET

    uniq, inverse = np.unique(shifts, return_inverse=True)
    inverse = inverse.reshape(-1)
    # Split mantissas so per-shift int64 sums cannot overflow
    hi = np.zeros(uniq.size, dtype=np.int64)
    lo = np.zeros(uniq.size, dtype=np.int64)
    np.add.at(hi, inverse, ints >> _SPLIT_BITS)
    np.add.at(lo, inverse, ints & _SPLIT_MASK)

    total = 0
    for shift, h, l in zip(uniq.tolist(), hi.tolist(), lo.tolist()):
        total += (h << (shift + _SPLIT_BITS)) + (l << shift)
    return total


def fixed_point_to_float(value: int) -> float:
    """Correctly rounded float of a fixed-point integer (±inf on overflow)."""
    try:
        return value / (1 << FIXED_POINT_BITS)
    except OverflowError:
        return float("inf") if value > 0 else float("-inf")


def to_limbs(value: int) -> list[float]:
    """Signed base-2**32 digits of ``value``, least significant first."""
    sign = -1 if value < 0 else 1
    magnitude = abs(value)
    if magnitude.bit_length() > NUM_LIMBS * LIMB_BITS:
        raise OverflowError(f"Fixed-point sum needs {magnitude.bit_length()} bits")
    limbs = []
    for _ in range(NUM_LIMBS):
        limbs.append(float(sign * (magnitude & _LIMB_MASK)))
        magnitude >>= LIMB_BITS
    return limbs


def from_limbs(limbs: Sequence[float]) -> int:
    total = 0
    for k, limb in enumerate(limbs):
        total += int(limb) << (LIMB_BITS * k)
    return total


@dataclass(frozen=True)
class PartialSums:
    """Exact per-worker (or reduced) sums behind one metric value.

    ``weighted_sum`` and ``weight_sum`` are fixed-point integers.
    ``num_failed`` counts workers whose local inputs failed validation.
    """

    weighted_sum: int = 0
    weight_sum: int = 0
    num_row: int = 0
    num_failed: int = 0

    def to_buffer(self) -> list[float]:
        return (
            to_limbs(self.weighted_sum)
            + to_limbs(self.weight_sum)
            + [float(self.num_row), float(self.num_failed)]
        )

    @classmethod
    def from_buffer(cls, buffer: Sequence[float]) -> "PartialSums":
        if len(buffer) != 2 * NUM_LIMBS + 2:
            raise ValueError(f"Expected {2 * NUM_LIMBS + 2} reduced values, got {len(buffer)}")
        return cls(
            weighted_sum=from_limbs(buffer[:NUM_LIMBS]),
            weight_sum=from_limbs(buffer[NUM_LIMBS:2 * NUM_LIMBS]),
            num_row=int(buffer[2 * NUM_LIMBS]),
            num_failed=int(buffer[2 * NUM_LIMBS + 1]),
        )


class Aggregator:
    """Reduce per-sample scores into a single weighted-average metric."""

    @staticmethod
    def is_collective(info: MetaInfo, communicator: Communicator | None = None) -> bool:
        """True when the global phase needs an all-reduce (row split, >1 worker)."""
        communicator = communicator or LocalCommunicator()
        return info.is_row_split() and communicator.world_size > 1

    @staticmethod
    def local_sums(values: np.ndarray, weights: np.ndarray) -> PartialSums:
        """Exact weighted sum and weight sum over local rows.

        Parameters
        ----------
        values : np.ndarray, shape (N,)
            Per-sample scores.
        weights : np.ndarray, shape (N,)
            Per-sample non-negative weights.

        Returns
        -------
        PartialSums
            Fixed-point sums and the local row count.
        """
        values = np.asarray(values, dtype=np.float64)
        weights = np.asarray(weights, dtype=np.float64)
        if values.shape != weights.shape:
            raise ValueError(
                f"Shape mismatch: values {values.shape} vs weights {weights.shape}"
            )
        with np.errstate(over="ignore"):
            weighted = values * weights
        return PartialSums(
            weighted_sum=to_fixed_point(weighted),
            weight_sum=to_fixed_point(weights),
            num_row=int(values.size),
        )

    @staticmethod
    def global_sums(
        info: MetaInfo,
        partial: PartialSums,
        communicator: Communicator | None = None,
    ) -> PartialSums:
        """Sum the local partials across workers when rows are split.

        Under column split every worker already holds all labels, so the
        partials are returned unchanged and no collective is issued.
        """
        communicator = communicator or LocalCommunicator()
        if not Aggregator.is_collective(info, communicator):
            return partial
        reduced = communicator.all_reduce_sum(partial.to_buffer())
        return PartialSums.from_buffer(reduced)

    @staticmethod
    def weighted_mean(total: PartialSums) -> float:
        """Final metric value. NaN (with a warning) when total weight is zero."""
        if total.weight_sum == 0:
            logger.warning("Total sample weight is zero; metric is undefined (nan)")
            return float("nan")
        # Both sums share one scale; int / int is correctly rounded
        return float(total.weighted_sum / total.weight_sum)

    @staticmethod
    def reduce(
        values: np.ndarray,
        info: MetaInfo,
        communicator: Communicator | None = None,
    ) -> float:
        """Local sums → global sums → weighted mean."""
        local = Aggregator.local_sums(values, info.get_weights())
        total = Aggregator.global_sums(info, local, communicator)
        Aggregator.log_sums(info, local, total)
        return Aggregator.weighted_mean(total)

    @staticmethod
    def log_sums(info: MetaInfo, local: PartialSums, total: PartialSums) -> None:
        if not logger.isEnabledFor(logging.DEBUG):
            return
        logger.debug(
            f"  reduce: local=({fixed_point_to_float(local.weighted_sum):.6g}, "
            f"{fixed_point_to_float(local.weight_sum):.6g}, rows={local.num_row}) "
            f"global=({fixed_point_to_float(total.weighted_sum):.6g}, "
            f"{fixed_point_to_float(total.weight_sum):.6g}, rows={total.num_row}) "
            f"split={info.data_split_mode.value}"
        )


__all__ = [
    "FIXED_POINT_BITS",
    "NUM_LIMBS",
    "PartialSums",
    "Aggregator",
    "to_fixed_point",
    "fixed_point_to_float",
    "to_limbs",
    "from_limbs",
]
