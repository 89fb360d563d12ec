import math

import numpy as np
import pytest
from scipy import stats

from survival_eval.distributions import (
    DistributionType,
    ExtremeDistribution,
    get_distribution,
    parse_distribution_type,
)
from survival_eval.errors import ConfigurationError

Z = np.linspace(-8.0, 8.0, 33)

REFERENCE = {
    "normal": stats.norm,
    "logistic": stats.logistic,
    "extreme": stats.gumbel_l,
}


@pytest.mark.parametrize("family", ["normal", "logistic", "extreme"])
def test_matches_scipy_in_the_body(family):
    dist = get_distribution(family)
    ref = REFERENCE[family]
    np.testing.assert_allclose(dist.log_pdf(Z), ref.logpdf(Z), rtol=1e-9, atol=1e-12)
    np.testing.assert_allclose(dist.log_cdf(Z), ref.logcdf(Z), rtol=1e-9, atol=1e-12)
    np.testing.assert_allclose(dist.log_survival(Z), ref.logsf(Z), rtol=1e-9, atol=1e-12)
    np.testing.assert_allclose(dist.cdf(Z), ref.cdf(Z), rtol=1e-9, atol=1e-15)


def test_normal_tails_follow_asymptotic_expansion():
    dist = get_distribution("normal")
    # log(1 - Phi(30)) = -450 - log(30) - log(sqrt(2 pi)) + log(1 - 1/900 + ...)
    assert dist.log_cdf(-30.0) == pytest.approx(-454.3212, abs=1e-3)
    assert dist.log_survival(30.0) == dist.log_cdf(-30.0)
    assert dist.log_cdf(30.0) == pytest.approx(0.0, abs=1e-150)


def test_logistic_tails():
    dist = get_distribution("logistic")
    assert dist.log_cdf(-30.0) == pytest.approx(-30.0, rel=1e-12)
    assert dist.log_survival(30.0) == pytest.approx(-30.0, rel=1e-12)
    assert dist.log_pdf(-40.0) == pytest.approx(-40.0, rel=1e-12)
    assert dist.log_pdf(40.0) == pytest.approx(-40.0, rel=1e-12)
    assert np.isfinite(dist.log_pdf(800.0))


def test_extreme_tails():
    dist = get_distribution("extreme")
    assert dist.log_cdf(-30.0) == pytest.approx(-30.0, rel=1e-12)
    assert dist.log_survival(30.0) == pytest.approx(-math.exp(30.0), rel=1e-12)
    assert dist.log_cdf(30.0) == 0.0
    assert dist.log_pdf(-30.0) == pytest.approx(-30.0, rel=1e-12)


def test_extreme_log_cdf_is_continuous_at_series_cutoff():
    dist = ExtremeDistribution()
    for z in (-25.0, -20.0001, -19.9999, -15.0):
        exact = math.log(-math.expm1(-math.exp(z)))
        assert dist.log_cdf(z) == pytest.approx(exact, rel=1e-12)


@pytest.mark.parametrize("family", ["normal", "logistic", "extreme"])
def test_infinite_arguments_give_analytic_limits(family):
    dist = get_distribution(family)
    assert dist.log_cdf(-np.inf) == -np.inf
    assert dist.log_cdf(np.inf) == 0.0
    assert dist.log_survival(np.inf) == -np.inf
    assert dist.log_survival(-np.inf) == 0.0


def test_family_lookup_is_case_insensitive():
    assert get_distribution("Normal").kind is DistributionType.NORMAL
    assert get_distribution(" LOGISTIC ").kind is DistributionType.LOGISTIC
    assert parse_distribution_type(DistributionType.EXTREME) is DistributionType.EXTREME


@pytest.mark.parametrize("name", ["weibull", "", "gumbel"])
def test_unknown_family_raises_configuration_error(name):
    with pytest.raises(ConfigurationError, match="Unknown AFT distribution"):
        get_distribution(name)


def test_non_string_family_raises_configuration_error():
    with pytest.raises(ConfigurationError):
        get_distribution(3)
