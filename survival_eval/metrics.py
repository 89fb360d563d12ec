"""Survival metrics: AFT negative log-likelihood and interval accuracy.

Provides the two evaluation metrics for censored time-to-event labels:
- aft-nloglik — weighted mean AFT negative log-likelihood (lower is better)
- interval-regression-accuracy — weighted fraction of predicted times inside
  each label's [lower, upper) interval (higher is better)

Both consume predictions as log-times and reduce through ``Aggregator`` so
that row-split, column-split and single-worker evaluation agree.

Lifecycle of a metric:

    Unconfigured --configure(options)--> Configured --evaluate(...)--> value

``evaluate`` never mutates the metric, so concurrent and repeated calls are
safe and return bit-identical values for unchanged inputs.
"""

from __future__ import annotations

import enum
import logging
from abc import ABC, abstractmethod
from typing import Any, Mapping

import numpy as np

from .aggregator import Aggregator, PartialSums
from .distributed import Communicator, LocalCommunicator
from .errors import ConfigurationError, InputError
from .info import MetaInfo, validate_predictions
from .likelihood import AFTLoss, AFTParam

logger = logging.getLogger(__name__)


class MetricState(str, enum.Enum):
    UNCONFIGURED = "unconfigured"
    CONFIGURED = "configured"


class Metric(ABC):
    """Base class for survival metrics."""

    #: registry name, e.g. "aft-nloglik"
    name: str = ""
    #: True when larger values are better
    maximize: bool = False

    def __init__(self):
        self._state = MetricState.UNCONFIGURED

    @property
    def state(self) -> MetricState:
        return self._state

    def configure(self, options: Mapping[str, Any] | None = None) -> "Metric":
        """Validate and freeze configuration. Returns ``self``."""
        if options:
            raise ConfigurationError(
                f"Metric '{self.name}' takes no options, got {sorted(options)}"
            )
        self._state = MetricState.CONFIGURED
        return self

    def evaluate(
        self,
        preds: np.ndarray,
        info: MetaInfo,
        communicator: Communicator | None = None,
        check_predictions: bool = False,
    ) -> float:
        """Score ``preds`` (log-times) against the labels in ``info``.

        Parameters
        ----------
        preds : np.ndarray, shape (N,)
            Predicted log event times for the rows visible to this worker.
        info : MetaInfo
            Labels, weights and split mode for the same rows.
        communicator : Communicator, optional
            Cross-worker reduction. Default: single worker.
        check_predictions : bool
            Also reject NaN/infinite predictions.

        Returns
        -------
        float
            Metric value, identical on every worker.

        Raises
        ------
        InputError
            On empty labels, length mismatches or invalid bounds. Under row
            split every worker raises, including those whose own rows are valid.
        """
        communicator = communicator or LocalCommunicator()
        preds = np.ascontiguousarray(preds, dtype=np.float64).reshape(-1)

        if not Aggregator.is_collective(info, communicator):
            _validate_inputs(preds, info, check_predictions, allow_empty=False)
            return Aggregator.reduce(self.per_sample(preds, info), info, communicator)

        # Row split: every worker joins the all-reduce, even with an empty or
        # invalid shard, and failures travel in the same reduction
        local_error = None
        try:
            _validate_inputs(preds, info, check_predictions, allow_empty=True)
            local = Aggregator.local_sums(self.per_sample(preds, info), info.get_weights())
        except ValueError as e:
            # InputError, or weighted scores overflowing to inf
            local_error = e
            local = PartialSums(num_failed=1)

        total = Aggregator.global_sums(info, local, communicator)
        Aggregator.log_sums(info, local, total)
        if local_error is not None:
            raise local_error
        if total.num_failed:
            raise InputError(
                f"Evaluation of '{self.name}' aborted: invalid input on "
                f"{total.num_failed} of {communicator.world_size} worker(s)"
            )
        if total.num_row == 0:
            raise InputError(f"No labels on any of {communicator.world_size} worker(s)")
        return Aggregator.weighted_mean(total)

    @abstractmethod
    def per_sample(self, preds: np.ndarray, info: MetaInfo) -> np.ndarray:
        """Per-sample scores for validated inputs."""
        ...

    def save_config(self) -> dict[str, Any]:
        return {"name": self.name}

    def load_config(self, config: Mapping[str, Any]) -> "Metric":
        _check_config_name(self, config)
        return self.configure()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(state={self._state.value})"


def _validate_inputs(
    preds: np.ndarray, info: MetaInfo, check_predictions: bool, allow_empty: bool
) -> None:
    info.validate(preds.size, allow_empty=allow_empty)
    if check_predictions:
        validate_predictions(preds)


def _check_config_name(metric: Metric, config: Mapping[str, Any]) -> None:
    name = config.get("name", metric.name)
    if name != metric.name:
        raise ConfigurationError(
            f"Config is for metric '{name}', cannot load into '{metric.name}'"
        )


class AFTNegLogLik(Metric):
    """Weighted mean AFT negative log-likelihood ("aft-nloglik").

    Options
    -------
    aft_loss_distribution : str
        "normal" (default), "logistic" or "extreme".
    aft_loss_distribution_scale : float or str
        Positive scale ``sigma`` (default 1.0).
    """

    name = "aft-nloglik"
    maximize = False

    def __init__(self):
        super().__init__()
        self._param = AFTParam()
        self._loss = AFTLoss(self._param)

    @property
    def param(self) -> AFTParam:
        return self._param

    def configure(self, options: Mapping[str, Any] | None = None) -> "AFTNegLogLik":
        """Validate and freeze ``AFTParam``.

        Re-configuring with identical values is a no-op; different values
        raise, since the parameters are frozen once configured.

        Raises
        ------
        ConfigurationError
            On unknown keys, unknown distribution, or invalid scale.
        """
        param = AFTParam.from_options(options or {})
        if self._state == MetricState.CONFIGURED and param != self._param:
            raise ConfigurationError(
                f"Metric '{self.name}' is already configured with {self._param}; "
                f"create a new metric to use {param}"
            )
        self._param = param
        self._loss = AFTLoss(param)
        self._state = MetricState.CONFIGURED
        logger.debug(
            f"Configured {self.name}: distribution={param.distribution.value}, scale={param.scale}"
        )
        return self

    def per_sample(self, preds: np.ndarray, info: MetaInfo) -> np.ndarray:
        return self._loss.loss(info.labels_lower_bound, info.labels_upper_bound, preds)

    def save_config(self) -> dict[str, Any]:
        return {"name": self.name, "aft_loss_param": self._param.to_dict()}

    def load_config(self, config: Mapping[str, Any]) -> "AFTNegLogLik":
        _check_config_name(self, config)
        if "aft_loss_param" not in config:
            raise ConfigurationError(f"Config for '{self.name}' is missing 'aft_loss_param'")
        return self.configure(config["aft_loss_param"])


class IntervalRegressionAccuracy(Metric):
    """Weighted fraction of predictions inside the label interval.

    A sample scores 1 when ``lower <= exp(pred) < upper``; exact labels
    (``lower == upper``) score 1 only when ``exp(pred)`` equals the event time.
    The test is done on the log scale (``log(lower) <= pred < log(upper)``),
    which is the same ordering and keeps ``pred = log(t)`` exact against ``t``.
    """

    name = "interval-regression-accuracy"
    maximize = True

    def __init__(self):
        super().__init__()
        # No options: usable without an explicit configure() call
        self._state = MetricState.CONFIGURED

    def per_sample(self, preds: np.ndarray, info: MetaInfo) -> np.ndarray:
        lower = info.labels_lower_bound
        upper = info.labels_upper_bound
        with np.errstate(divide="ignore"):
            log_lower = np.log(lower)
            log_upper = np.log(upper)
        exact = lower == upper
        inside = (log_lower <= preds) & (preds < log_upper)
        hit = np.where(exact, preds == log_lower, inside)
        return hit.astype(np.float64)


class MetricRegistry:
    """Name → metric class lookup."""

    _METRICS: dict[str, type[Metric]] = {
        AFTNegLogLik.name: AFTNegLogLik,
        IntervalRegressionAccuracy.name: IntervalRegressionAccuracy,
    }

    @staticmethod
    def available() -> list[str]:
        return sorted(MetricRegistry._METRICS)

    @staticmethod
    def create(name: str, options: Mapping[str, Any] | None = None) -> Metric:
        """Instantiate and configure a metric by name.

        Raises
        ------
        ConfigurationError
            If the name is unknown or the options are invalid.
        """
        cls = MetricRegistry._METRICS.get(str(name).strip().lower())
        if cls is None:
            raise ConfigurationError(
                f"Unknown metric: {name!r}. Available: {MetricRegistry.available()}"
            )
        return cls().configure(options)


__all__ = [
    "MetricState",
    "Metric",
    "AFTNegLogLik",
    "IntervalRegressionAccuracy",
    "MetricRegistry",
]
