import logging
import math

import numpy as np
import pytest

from survival_eval.errors import ConfigurationError, InputError
from survival_eval.info import MetaInfo
from survival_eval.metrics import (
    AFTNegLogLik,
    IntervalRegressionAccuracy,
    MetricRegistry,
    MetricState,
)

INF = np.inf


class TestAFTNegLogLik:
    @pytest.mark.parametrize(
        "family, expected",
        [("normal", 2.1508), ("logistic", 2.1804), ("extreme", 2.0706)],
    )
    def test_known_values(self, aft_labels, aft_preds, family, expected):
        metric = MetricRegistry.create(
            "aft-nloglik",
            {"aft_loss_distribution": family, "aft_loss_distribution_scale": 1.0},
        )
        assert metric.evaluate(aft_preds, aft_labels) == pytest.approx(expected, abs=1e-4)

    def test_unconfigured_metric_uses_normal_unit_scale(self, aft_labels, aft_preds):
        metric = AFTNegLogLik()
        assert metric.state is MetricState.UNCONFIGURED
        assert metric.evaluate(aft_preds, aft_labels) == pytest.approx(2.1508, abs=1e-4)

    def test_repeated_evaluation_is_bit_identical(self, random_labels):
        info, preds = random_labels
        metric = MetricRegistry.create("aft-nloglik", {"aft_loss_distribution": "logistic"})
        values = {metric.evaluate(preds, info) for _ in range(5)}
        assert len(values) == 1

    def test_weights_change_the_mean(self, aft_preds):
        lower = [100.0, 0.0, 60.0, 16.0]
        upper = [100.0, 20.0, INF, 200.0]
        metric = AFTNegLogLik()
        per_sample = metric.per_sample(aft_preds, MetaInfo(lower, upper))

        weights = np.array([3.0, 0.0, 1.0, 0.5])
        info = MetaInfo(lower, upper, weights=weights)
        expected = float(np.sum(per_sample * weights) / np.sum(weights))
        assert metric.evaluate(aft_preds, info) == pytest.approx(expected, rel=1e-12)

    def test_zero_total_weight_is_nan(self, aft_preds, caplog):
        info = MetaInfo(
            [100.0, 0.0, 60.0, 16.0], [100.0, 20.0, INF, 200.0], weights=np.zeros(4)
        )
        with caplog.at_level(logging.WARNING):
            value = AFTNegLogLik().evaluate(aft_preds, info)
        assert math.isnan(value)
        assert "Total sample weight is zero" in caplog.text

    def test_save_config_formats_scale_as_string(self):
        for scale in (10, "10", 10.0):
            metric = AFTNegLogLik().configure(
                {"aft_loss_distribution": "normal", "aft_loss_distribution_scale": scale}
            )
            assert metric.save_config() == {
                "name": "aft-nloglik",
                "aft_loss_param": {
                    "aft_loss_distribution": "normal",
                    "aft_loss_distribution_scale": "10",
                },
            }

    def test_load_config_restores_parameters(self, aft_labels, aft_preds):
        source = MetricRegistry.create(
            "aft-nloglik",
            {"aft_loss_distribution": "extreme", "aft_loss_distribution_scale": 0.75},
        )
        restored = AFTNegLogLik().load_config(source.save_config())
        assert restored.param == source.param
        assert restored.evaluate(aft_preds, aft_labels) == source.evaluate(aft_preds, aft_labels)

    def test_load_config_requires_param_block(self):
        with pytest.raises(ConfigurationError, match="aft_loss_param"):
            AFTNegLogLik().load_config({"name": "aft-nloglik"})

    def test_load_config_rejects_other_metric(self):
        with pytest.raises(ConfigurationError, match="cannot load"):
            AFTNegLogLik().load_config({"name": "interval-regression-accuracy"})

    @pytest.mark.parametrize(
        "options",
        [
            {"aft_loss_distribution": "weibull"},
            {"aft_loss_distribution_scale": 0},
            {"aft_loss_distribution_scale": -2.0},
            {"aft_loss_distribution_scale": "abc"},
        ],
    )
    def test_invalid_configuration(self, options):
        with pytest.raises(ConfigurationError):
            AFTNegLogLik().configure(options)

    def test_reconfigure_with_same_values_is_allowed(self):
        metric = AFTNegLogLik().configure({"aft_loss_distribution": "logistic"})
        metric.configure({"aft_loss_distribution": "Logistic"})
        assert metric.param.distribution.value == "logistic"

    def test_reconfigure_with_different_values_raises(self):
        metric = AFTNegLogLik().configure({"aft_loss_distribution": "logistic"})
        with pytest.raises(ConfigurationError, match="already configured"):
            metric.configure({"aft_loss_distribution": "normal"})

    def test_prediction_count_mismatch(self, aft_labels):
        with pytest.raises(InputError, match="Prediction count"):
            AFTNegLogLik().evaluate(np.zeros(3), aft_labels)

    def test_empty_labels(self):
        with pytest.raises(InputError, match="cannot be empty"):
            AFTNegLogLik().evaluate(np.zeros(0), MetaInfo([], []))

    def test_negative_bound(self):
        info = MetaInfo([-1.0, 2.0], [1.0, 3.0])
        with pytest.raises(InputError, match="negative"):
            AFTNegLogLik().evaluate(np.zeros(2), info)

    def test_negative_weight(self, aft_labels, aft_preds):
        aft_labels.weights = np.array([1.0, -1.0, 1.0, 1.0])
        with pytest.raises(InputError, match="non-negative"):
            AFTNegLogLik().evaluate(aft_preds, aft_labels)

    def test_weight_count_mismatch(self, aft_labels, aft_preds):
        aft_labels.weights = np.ones(3)
        with pytest.raises(InputError, match="Weight count"):
            AFTNegLogLik().evaluate(aft_preds, aft_labels)


class TestIntervalRegressionAccuracy:
    def _accuracy(self, lower, upper, preds):
        return IntervalRegressionAccuracy().evaluate(preds, MetaInfo(lower, upper))

    def test_sequence_of_label_edits(self):
        preds = np.log(np.full(4, 60.0))
        lower = [20.0, 0.0, 60.0, 16.0]
        upper = [80.0, 20.0, 80.0, 200.0]
        assert self._accuracy(lower, upper, preds) == pytest.approx(0.75)

        lower[2] = 70.0
        assert self._accuracy(lower, upper, preds) == pytest.approx(0.50)

        upper[2] = INF
        assert self._accuracy(lower, upper, preds) == pytest.approx(0.50)

        upper[3] = INF
        assert self._accuracy(lower, upper, preds) == pytest.approx(0.50)

        lower[0] = 70.0
        assert self._accuracy(lower, upper, preds) == pytest.approx(0.25)

    def test_upper_bound_is_exclusive(self):
        preds = np.log(np.array([80.0]))
        assert self._accuracy([20.0], [80.0], preds) == 0.0

    def test_exact_label_hits_only_at_the_event_time(self):
        preds = np.log(np.array([50.0, 51.0]))
        assert self._accuracy([50.0, 50.0], [50.0, 50.0], preds) == pytest.approx(0.5)

    def test_is_usable_without_configure(self, accuracy_labels):
        metric = IntervalRegressionAccuracy()
        assert metric.state is MetricState.CONFIGURED
        assert metric.maximize
        preds = np.log(np.full(4, 60.0))
        assert metric.evaluate(preds, accuracy_labels) == pytest.approx(0.75)

    def test_rejects_options(self):
        with pytest.raises(ConfigurationError, match="takes no options"):
            IntervalRegressionAccuracy().configure({"aft_loss_distribution": "normal"})

    def test_weighted(self):
        preds = np.log(np.full(2, 60.0))
        info = MetaInfo([20.0, 0.0], [80.0, 20.0], weights=[3.0, 1.0])
        assert IntervalRegressionAccuracy().evaluate(preds, info) == pytest.approx(0.75)

    def test_config_round_trip(self):
        metric = IntervalRegressionAccuracy()
        assert metric.save_config() == {"name": "interval-regression-accuracy"}
        assert IntervalRegressionAccuracy().load_config(metric.save_config()).state is (
            MetricState.CONFIGURED
        )


class TestMetricRegistry:
    def test_available(self):
        assert MetricRegistry.available() == ["aft-nloglik", "interval-regression-accuracy"]

    def test_create_returns_configured_metric(self):
        metric = MetricRegistry.create("AFT-NLOGLIK")
        assert isinstance(metric, AFTNegLogLik)
        assert metric.state is MetricState.CONFIGURED
        assert not metric.maximize

    def test_unknown_metric(self):
        with pytest.raises(ConfigurationError, match="Unknown metric"):
            MetricRegistry.create("c-index")
