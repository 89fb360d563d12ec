"""Evaluation runner for survival metrics.

Provides an Evaluator that:
1. Builds configured metrics from a YAML metric config
2. Validates predictions and labels once per run
3. Evaluates every metric through the shared local/global reduction
4. Returns structured results as a dict (one value per metric)

Metric config format (YAML list):

    - name: aft-nloglik
      aft_loss_distribution: normal
      aft_loss_distribution_scale: 1.0
    - name: interval-regression-accuracy
"""

from __future__ import annotations

import logging
import time as time_module
from pathlib import Path
from typing import Any, Sequence

import numpy as np
import pandas as pd
import yaml

from .aggregator import Aggregator
from .censoring import censoring_summary
from .distributed import Communicator, default_communicator
from .distributions import DistributionType
from .errors import ConfigurationError, InputError
from .info import DataSplitMode, MetaInfo, validate_predictions
from .likelihood import AFT_DISTRIBUTION_KEY, AFT_SCALE_KEY
from .metrics import Metric, MetricRegistry

logger = logging.getLogger(__name__)

DEFAULT_METRICS = [
    {"name": "aft-nloglik"},
    {"name": "interval-regression-accuracy"},
]


def _read_config(config_path: str | Path) -> Any:
    with open(config_path) as f:
        return yaml.safe_load(f)


def validate_metric_entries(configs: Any) -> list[str]:
    """Validate parsed metric config entries.

    Returns
    -------
    list[str]
        List of validation errors. Empty list means valid config.
    """
    if not isinstance(configs, list):
        return [f"Config must be a YAML list of metric entries, got {type(configs).__name__}"]
    if len(configs) == 0:
        return ["Config has no metric entries"]

    errors = []
    available = MetricRegistry.available()
    families = [d.value for d in DistributionType]
    seen: set[str] = set()

    for idx, entry in enumerate(configs):
        if not isinstance(entry, dict):
            errors.append(f"Entry {idx}: Expected dict, got {type(entry).__name__}")
            continue
        prefix = f"Entry {idx} ({entry.get('name', '???')})"

        name = entry.get("name")
        if name is None:
            errors.append(f"{prefix}: Missing required field 'name'")
            continue
        if name not in available:
            errors.append(f"{prefix}: Unknown metric '{name}'. Available: {available}")
            continue
        if name in seen:
            errors.append(f"{prefix}: Duplicate metric entry")
        seen.add(name)

        options = {k: v for k, v in entry.items() if k != "name"}
        if name != "aft-nloglik":
            if options:
                errors.append(f"{prefix}: Metric takes no options, got {sorted(options)}")
            continue

        for key in sorted(set(options) - {AFT_DISTRIBUTION_KEY, AFT_SCALE_KEY}):
            errors.append(f"{prefix}: Unknown option '{key}'")

        if AFT_DISTRIBUTION_KEY in options:
            dist_name = options[AFT_DISTRIBUTION_KEY]
            if not isinstance(dist_name, str) or dist_name.strip().lower() not in families:
                errors.append(
                    f"{prefix}: '{AFT_DISTRIBUTION_KEY}' must be one of {families}, "
                    f"got {dist_name!r}"
                )

        if AFT_SCALE_KEY in options:
            scale = options[AFT_SCALE_KEY]
            try:
                if isinstance(scale, bool):
                    raise ValueError
                scale_value = float(scale)
            except (TypeError, ValueError):
                errors.append(
                    f"{prefix}: '{AFT_SCALE_KEY}' should be a number, "
                    f"got {type(scale).__name__} ({scale!r})"
                )
            else:
                if not np.isfinite(scale_value) or scale_value <= 0:
                    errors.append(
                        f"{prefix}: '{AFT_SCALE_KEY}' must be finite and positive, got {scale!r}"
                    )

    return errors


def validate_config(config_path: str | Path) -> list[str]:
    """Validate a metric YAML config for schema correctness.

    Parameters
    ----------
    config_path : str or Path
        Path to metric YAML config.

    Returns
    -------
    list[str]
        List of validation errors. Empty list means valid config.
    """
    config_path = Path(config_path)
    if not config_path.exists():
        return [f"Config file not found: {config_path}"]
    try:
        configs = _read_config(config_path)
    except yaml.YAMLError as e:
        return [f"YAML parse error in {config_path}: {e}"]
    return validate_metric_entries(configs)


def build_metrics(configs: Sequence[dict]) -> list[Metric]:
    """Instantiate configured metrics from parsed config entries.

    Raises
    ------
    ConfigurationError
        With every validation error joined into the message.
    """
    errors = validate_metric_entries(list(configs))
    if errors:
        error_msg = "\n".join(f"  - {e}" for e in errors)
        raise ConfigurationError(f"Metric config validation failed:\n{error_msg}")
    metrics = []
    for entry in configs:
        options = {k: v for k, v in entry.items() if k != "name"}
        metrics.append(MetricRegistry.create(entry["name"], options))
    return metrics


def load_metrics(config_path: str | Path) -> list[Metric]:
    """Load and configure metrics from a YAML file."""
    config_path = Path(config_path)
    errors = validate_config(config_path)
    if errors:
        error_msg = "\n".join(f"  - {e}" for e in errors)
        raise ConfigurationError(
            f"Metric config validation failed ({config_path.name}):\n{error_msg}"
        )
    return build_metrics(_read_config(config_path))


class Evaluator:
    """Evaluate a set of survival metrics on one dataset.

    Parameters
    ----------
    metrics : list[Metric], optional
        Configured metrics. Default: aft-nloglik (normal, 1.0) and
        interval-regression-accuracy.
    communicator : Communicator, optional
        Cross-worker reduction. Default: torch.distributed when a process
        group is initialized, single worker otherwise.
    """

    def __init__(
        self,
        metrics: Sequence[Metric] | None = None,
        communicator: Communicator | None = None,
    ):
        self.metrics = list(metrics) if metrics is not None else build_metrics(DEFAULT_METRICS)
        self.communicator = communicator if communicator is not None else default_communicator()

    @classmethod
    def from_config(
        cls,
        config_path: str | Path,
        communicator: Communicator | None = None,
    ) -> "Evaluator":
        return cls(load_metrics(config_path), communicator=communicator)

    @property
    def is_main_process(self) -> bool:
        return self.communicator.rank == 0

    def evaluate(
        self,
        preds: np.ndarray,
        info: MetaInfo,
        check_predictions: bool = False,
    ) -> dict:
        """Evaluate every metric.

        Parameters
        ----------
        preds : np.ndarray, shape (N,)
            Predicted log-times for the rows visible to this worker.
        info : MetaInfo
            Labels for the same rows.
        check_predictions : bool
            Reject NaN/infinite predictions instead of scoring them.

        Returns
        -------
        dict
            {metric_name: value, ..., n_rows, split_mode, world_size, elapsed_s}.
            ``n_rows`` counts the rows visible to this worker.
        """
        start = time_module.time()
        preds = np.ascontiguousarray(preds, dtype=np.float64).reshape(-1)
        collective = Aggregator.is_collective(info, self.communicator)
        if not collective:
            info.validate(preds.size)
            if check_predictions:
                validate_predictions(preds)

        if self.is_main_process:
            logger.info(
                f"Evaluating {len(self.metrics)} metric(s) on {info.num_row} local rows "
                f"(split={info.data_split_mode.value}, world_size={self.communicator.world_size})"
            )
            if not collective:
                counts = censoring_summary(info.labels_lower_bound, info.labels_upper_bound)
                logger.info(f"  censoring (all rows): {counts}")

        result: dict[str, Any] = {}
        for metric in self.metrics:
            metric_start = time_module.time()
            value = metric.evaluate(preds, info, self.communicator, check_predictions)
            result[metric.name] = value
            if self.is_main_process:
                logger.info(f"  {metric.name}: {value:.6f}")
                logger.debug(
                    f"  {metric.name}: config={metric.save_config()} "
                    f"elapsed={time_module.time() - metric_start:.3f}s"
                )

        if self.is_main_process and collective and self.metrics:
            # Labels were validated by the metrics above
            counts = censoring_summary(info.labels_lower_bound, info.labels_upper_bound)
            logger.info(f"  censoring (rank {self.communicator.rank} shard only): {counts}")

        result["n_rows"] = info.num_row
        result["split_mode"] = info.data_split_mode.value
        result["world_size"] = self.communicator.world_size
        result["elapsed_s"] = round(time_module.time() - start, 3)
        return result

    def evaluate_frame(
        self,
        df: pd.DataFrame,
        pred_col: str = "prediction",
        lower_col: str = "label_lower_bound",
        upper_col: str = "label_upper_bound",
        weight_col: str | None = None,
        data_split_mode: DataSplitMode | str = DataSplitMode.ROW,
    ) -> dict:
        """Evaluate predictions and labels stored as DataFrame columns.

        Non-numeric or missing prediction cells raise ``InputError``.
        """
        if pred_col not in df.columns:
            raise InputError(
                f"Prediction column '{pred_col}' not found. Available: {list(df.columns)}"
            )
        info = MetaInfo.from_frame(
            df,
            lower_col=lower_col,
            upper_col=upper_col,
            weight_col=weight_col,
            data_split_mode=data_split_mode,
        )
        preds = pd.to_numeric(df[pred_col], errors="coerce").to_numpy(dtype=np.float64)
        return self.evaluate(preds, info, check_predictions=True)

    def save_config(self) -> list[dict]:
        """Serialized configuration of every metric, in evaluation order."""
        return [metric.save_config() for metric in self.metrics]


__all__ = [
    "DEFAULT_METRICS",
    "validate_metric_entries",
    "validate_config",
    "build_metrics",
    "load_metrics",
    "Evaluator",
]
