import numpy as np
import pytest

from crf_learning.config.config import FiniteDifferenceConfig
from crf_learning.core.gradient_check import FiniteDifferenceChecker
from crf_learning.core.objectives import make_objective_pair


def test_regularizer_gradient_has_no_mismatches(regularizer_only_model):
    objective, gradient = make_objective_pair(regularizer_only_model(2), 1.0)
    weights = np.array([1.0, 2.0])
    checker = FiniteDifferenceChecker(objective, step=1e-4, tolerance=1e-3)

    report = checker.check(weights, gradient.gradient(weights))

    assert report.passed
    assert report.mismatches == []
    assert report.checked == 2
    np.testing.assert_allclose(report.approximate_gradient, [-2.0, -4.0], atol=1e-3)


def test_small_step_agrees_within_tolerance(shifted_quadratic_model):
    rng = np.random.default_rng(5)
    model = shifted_quadratic_model(rng.normal(size=(4, 6)))
    objective, gradient = make_objective_pair(model, 0.5)
    weights = rng.normal(size=6)

    report = FiniteDifferenceChecker(objective, step=1e-6, tolerance=0.1).check(
        weights, gradient.gradient(weights)
    )

    assert report.passed
    assert report.max_abs_difference == 0.0


def test_wrong_gradient_is_reported_not_raised(regularizer_only_model):
    objective, _ = make_objective_pair(regularizer_only_model(3), 1.0)
    weights = np.array([1.0, 2.0, 3.0])
    wrong = np.array([-2.0, 0.0, -6.0])

    report = FiniteDifferenceChecker(objective, step=1e-5, tolerance=1e-2).check(weights, wrong)

    assert not report.passed
    assert [m.index for m in report.mismatches] == [1]
    mismatch = report.mismatches[0]
    assert mismatch.analytic_value == 0.0
    assert mismatch.approx_value == pytest.approx(-4.0, abs=1e-3)
    assert mismatch.absolute_difference == pytest.approx(4.0, abs=1e-3)
    frame = report.to_frame()
    assert list(frame.index) == [1]
    assert list(frame.columns) == ["analytic_value", "approx_value", "absolute_difference"]


def test_subset_of_dimensions(regularizer_only_model):
    objective, gradient = make_objective_pair(regularizer_only_model(4), 1.0)
    weights = np.array([1.0, -1.0, 0.5, 2.0])

    report = FiniteDifferenceChecker(objective, step=1e-5, tolerance=1e-2).check(
        weights, gradient.gradient(weights), dimensions=[2, 0]
    )

    assert report.checked == 2
    assert np.isnan(report.approximate_gradient[[1, 3]]).all()
    np.testing.assert_allclose(report.approximate_gradient[[0, 2]], [-2.0, -1.0], atol=1e-3)


def test_parallel_check_matches_serial(shifted_quadratic_model):
    rng = np.random.default_rng(9)
    model = shifted_quadratic_model(rng.normal(size=(3, 8)))
    objective, gradient = make_objective_pair(model, 0.2)
    weights = rng.normal(size=8)
    analytic = gradient.gradient(weights)
    analytic[3] += 1.0

    serial = FiniteDifferenceChecker(objective, step=1e-6, tolerance=0.1).check(weights, analytic)
    parallel = FiniteDifferenceChecker(objective, step=1e-6, tolerance=0.1, max_workers=4).check(
        weights, analytic
    )

    np.testing.assert_allclose(parallel.approximate_gradient, serial.approximate_gradient)
    assert [m.index for m in parallel.mismatches] == [m.index for m in serial.mismatches] == [3]


def test_check_does_not_mutate_weights(regularizer_only_model):
    objective, gradient = make_objective_pair(regularizer_only_model(2), 1.0)
    weights = np.array([1.0, 2.0])
    FiniteDifferenceChecker(objective).check(weights, gradient.gradient(weights))
    np.testing.assert_array_equal(weights, [1.0, 2.0])


@pytest.mark.parametrize("step, tolerance", [(0.0, 0.1), (-1e-8, 0.1), (1e-8, -0.1)])
def test_invalid_configuration_raises(regularizer_only_model, step, tolerance):
    objective, _ = make_objective_pair(regularizer_only_model(2), 1.0)
    with pytest.raises(ValueError):
        FiniteDifferenceChecker(objective, step=step, tolerance=tolerance)


def test_from_config(regularizer_only_model):
    objective, _ = make_objective_pair(regularizer_only_model(2), 1.0)
    checker = FiniteDifferenceChecker.from_config(objective, FiniteDifferenceConfig(step=1e-4, tolerance=1e-3))
    assert checker.step == 1e-4
    assert checker.tolerance == 1e-3
