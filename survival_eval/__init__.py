# Survival Evaluation Engine — AFT likelihood metrics for censored labels
#
# This package scores log-time predictions against censored time-to-event
# labels. It separates concerns into:
#
#   distributions.py — normal / logistic / extreme log-space PDF, CDF, survival
#   censoring.py     — censoring regime of each (lower, upper) label pair
#   likelihood.py    — per-sample AFT negative log-likelihood, AFTParam
#   info.py          — labels, weights, data split mode (MetaInfo)
#   aggregator.py    — local weighted sums → all-reduce → weighted mean
#   distributed.py   — communicators (local, torch.distributed), row sharding
#   metrics.py       — aft-nloglik, interval-regression-accuracy, registry
#   evaluator.py     — YAML metric configs and the evaluation runner
#   cli.py           — survival-eval command-line entry point

from .errors import SurvivalEvalError, ConfigurationError, InputError
from .distributions import DistributionType, get_distribution
from .censoring import CensoringType, classify_censoring
from .likelihood import AFTLoss, AFTParam
from .info import DataSplitMode, MetaInfo
from .aggregator import Aggregator
from .distributed import (
    Communicator,
    LocalCommunicator,
    TorchCommunicator,
    default_communicator,
    get_dist_info,
    shard_row_indices,
)
from .metrics import AFTNegLogLik, IntervalRegressionAccuracy, MetricRegistry
from .evaluator import Evaluator, load_metrics, validate_config

__version__ = "0.1.0"

__all__ = [
    "SurvivalEvalError",
    "ConfigurationError",
    "InputError",
    "DistributionType",
    "get_distribution",
    "CensoringType",
    "classify_censoring",
    "AFTLoss",
    "AFTParam",
    "DataSplitMode",
    "MetaInfo",
    "Aggregator",
    "Communicator",
    "LocalCommunicator",
    "TorchCommunicator",
    "default_communicator",
    "get_dist_info",
    "shard_row_indices",
    "AFTNegLogLik",
    "IntervalRegressionAccuracy",
    "MetricRegistry",
    "Evaluator",
    "load_metrics",
    "validate_config",
]
