"""Label-side view of a dataset, as seen by the survival metrics.

``MetaInfo`` carries the censoring bounds, optional sample weights, and the
way the dataset is partitioned across workers. Feature storage is not
modelled: metrics never touch it.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

import numpy as np
import pandas as pd

from .censoring import validate_bounds
from .errors import InputError

logger = logging.getLogger(__name__)


class DataSplitMode(str, enum.Enum):
    """How the dataset is partitioned across workers.

    row    — each worker holds a disjoint subset of rows (and their labels).
    column — each worker holds a subset of features but every row's labels.
    """

    ROW = "row"
    COLUMN = "column"


def _as_float_array(values) -> np.ndarray:
    if values is None:
        return np.empty(0, dtype=np.float64)
    return np.ascontiguousarray(values, dtype=np.float64).reshape(-1)


@dataclass
class MetaInfo:
    """Survival labels and weights for the rows visible to this worker."""

    labels_lower_bound: np.ndarray
    labels_upper_bound: np.ndarray
    weights: np.ndarray = field(default_factory=lambda: np.empty(0, dtype=np.float64))
    data_split_mode: DataSplitMode = DataSplitMode.ROW

    def __post_init__(self):
        self.labels_lower_bound = _as_float_array(self.labels_lower_bound)
        self.labels_upper_bound = _as_float_array(self.labels_upper_bound)
        self.weights = _as_float_array(self.weights)
        self.data_split_mode = DataSplitMode(self.data_split_mode)

    @property
    def num_row(self) -> int:
        return int(self.labels_lower_bound.size)

    def is_row_split(self) -> bool:
        return self.data_split_mode == DataSplitMode.ROW

    def is_column_split(self) -> bool:
        return self.data_split_mode == DataSplitMode.COLUMN

    def get_weights(self) -> np.ndarray:
        """Per-row weights; uniform 1.0 when none were supplied."""
        if self.weights.size == 0:
            return np.ones(self.num_row, dtype=np.float64)
        return self.weights

    def validate(self, num_preds: int, allow_empty: bool = False) -> None:
        """Check labels, weights and prediction count before evaluation.

        Parameters
        ----------
        num_preds : int
            Number of predictions supplied for these rows.
        allow_empty : bool
            Accept zero rows. Used for a row-split shard, where another
            worker may hold all the rows.

        Raises
        ------
        InputError
            If labels are empty (and not allowed to be), counts disagree,
            weights are negative or non-finite, or any bound pair is invalid.
        """
        if not allow_empty:
            if self.labels_lower_bound.size == 0:
                raise InputError("labels_lower_bound cannot be empty")
            if self.labels_upper_bound.size == 0:
                raise InputError("labels_upper_bound cannot be empty")
        validate_bounds(self.labels_lower_bound, self.labels_upper_bound)

        if num_preds != self.num_row:
            raise InputError(
                f"Prediction count ({num_preds}) does not match label count ({self.num_row})"
            )
        if self.weights.size != 0:
            if self.weights.size != self.num_row:
                raise InputError(
                    f"Weight count ({self.weights.size}) does not match label count ({self.num_row})"
                )
            if not np.isfinite(self.weights).all() or (self.weights < 0).any():
                raise InputError("Sample weights must be finite and non-negative")

    def slice(self, indices: Sequence[int]) -> "MetaInfo":
        """Row subset, used to build the shard a worker sees under row split."""
        idx = np.asarray(indices, dtype=np.int64)
        weights = self.weights[idx] if self.weights.size else self.weights
        return MetaInfo(
            labels_lower_bound=self.labels_lower_bound[idx],
            labels_upper_bound=self.labels_upper_bound[idx],
            weights=weights,
            data_split_mode=self.data_split_mode,
        )

    @classmethod
    def from_frame(
        cls,
        df: pd.DataFrame,
        lower_col: str = "label_lower_bound",
        upper_col: str = "label_upper_bound",
        weight_col: str | None = None,
        data_split_mode: DataSplitMode | str = DataSplitMode.ROW,
    ) -> "MetaInfo":
        """Build from a DataFrame with lower/upper bound (and weight) columns.

        Empty or 'inf' upper-bound cells are read as +inf (open-ended).
        """
        missing = [c for c in (lower_col, upper_col, weight_col) if c and c not in df.columns]
        if missing:
            raise InputError(
                f"Missing label column(s) {missing}. Available: {list(df.columns)}"
            )
        upper = pd.to_numeric(df[upper_col], errors="coerce").fillna(np.inf)
        lower = pd.to_numeric(df[lower_col], errors="coerce")
        weights = None
        if weight_col:
            weights = pd.to_numeric(df[weight_col], errors="coerce").to_numpy()
        return cls(
            labels_lower_bound=lower.to_numpy(),
            labels_upper_bound=upper.to_numpy(),
            weights=weights,
            data_split_mode=data_split_mode,
        )


def validate_predictions(preds: np.ndarray) -> None:
    """Reject NaN or infinite predictions (e.g. non-numeric table cells).

    Raises
    ------
    InputError
        With the first offending row and the number of rows affected.
    """
    preds = np.asarray(preds, dtype=np.float64).reshape(-1)
    bad = ~np.isfinite(preds)
    if bad.any():
        idx = int(np.flatnonzero(bad)[0])
        raise InputError(
            f"Invalid prediction at row {idx}: {float(preds[idx])!r} is not a finite "
            f"log-time (non-numeric or missing value); {int(bad.sum())} row(s) affected"
        )


def load_frame(path: str | Path) -> pd.DataFrame:
    """Read a CSV or Parquet file of labels and predictions."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Data file not found: {path}")
    if path.suffix == ".parquet":
        df = pd.read_parquet(path)
    else:
        df = pd.read_csv(path)
    logger.info(f"Loaded {len(df)} rows from {path.name} (columns={list(df.columns)})")
    return df


__all__ = ["DataSplitMode", "MetaInfo", "validate_predictions", "load_frame"]
