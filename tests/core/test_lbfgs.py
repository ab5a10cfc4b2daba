import numpy as np
import pytest
from scipy.optimize import rosen, rosen_der

from crf_learning.config.config import LBFGSConfig
from crf_learning.core.lbfgs import LBFGS, CurvatureHistory
from crf_learning.core.models import OptimizerStatus
from crf_learning.utils.exceptions import (
    DimensionError,
    ErrorKind,
    NotANumberError,
    OptimizationError,
    RoundoffError,
)


class NegatedRosenbrock:
    def evaluate(self, weights):
        return -float(rosen(weights))


class NegatedRosenbrockGradient:
    def evaluate(self, out_grad, weights):
        out_grad[...] = -rosen_der(weights)


class WeightedQuadratic:
    """``f(w) = -(w0^2 + 100 w1^2)``: badly scaled, so one step cannot converge."""

    scale = np.array([1.0, 100.0])

    def evaluate(self, weights):
        return -float(self.scale @ np.asarray(weights) ** 2)


class WeightedQuadraticGradient:
    def evaluate(self, out_grad, weights):
        out_grad[...] = -2.0 * WeightedQuadratic.scale * np.asarray(weights)


def test_converges_to_target(target_quadratic):
    objective_cls, gradient_cls = target_quadratic
    target = [3.0, -1.0]
    optimizer = LBFGS(objective_cls(target), gradient_cls(target), memory=5, max_iterations=100)

    result = optimizer.learn_weights(np.array([0.0, 0.0]))

    assert result.status is OptimizerStatus.CONVERGED
    assert result.converged
    assert optimizer.status is OptimizerStatus.CONVERGED
    np.testing.assert_allclose(result.weights, target, atol=1e-3)
    assert result.objective_value == pytest.approx(0.0, abs=1e-6)
    assert result.iterations <= 100
    assert result.objective_trace[0] == pytest.approx(-10.0)
    assert result.objective_trace[-1] >= result.objective_trace[0]


def test_initial_weights_are_not_mutated(target_quadratic):
    objective_cls, gradient_cls = target_quadratic
    initial = np.array([0.0, 0.0])
    result = LBFGS(objective_cls([3.0, -1.0]), gradient_cls([3.0, -1.0])).learn_weights(initial)
    np.testing.assert_array_equal(initial, [0.0, 0.0])
    assert result.weights is not initial


def test_rosenbrock():
    optimizer = LBFGS(NegatedRosenbrock(), NegatedRosenbrockGradient(), memory=10, max_iterations=500)
    result = optimizer.learn_weights(np.array([-1.2, 1.0]))
    assert result.status is OptimizerStatus.CONVERGED
    np.testing.assert_allclose(result.weights, [1.0, 1.0], atol=1e-3)


def test_max_iterations_reached():
    optimizer = LBFGS(WeightedQuadratic(), WeightedQuadraticGradient(), max_iterations=1)
    result = optimizer.learn_weights(np.array([1.0, 1.0]))
    assert result.status is OptimizerStatus.MAX_ITERATIONS_REACHED
    assert result.iterations == 1
    assert len(result.objective_trace) == 2


def test_time_budget_is_checked_each_iteration(target_quadratic):
    objective_cls, gradient_cls = target_quadratic
    optimizer = LBFGS(objective_cls([3.0, -1.0]), gradient_cls([3.0, -1.0]), max_seconds=0.0)
    result = optimizer.learn_weights(np.array([0.0, 0.0]))
    assert result.status is OptimizerStatus.TIME_LIMIT_REACHED
    assert result.iterations == 0
    np.testing.assert_array_equal(result.weights, [0.0, 0.0])


def test_wrong_gradient_raises_roundoff_error(target_quadratic):
    objective_cls, gradient_cls = target_quadratic
    optimizer = LBFGS(objective_cls([3.0, -1.0]), gradient_cls([3.0, -1.0], sign=-1.0))
    with pytest.raises(RoundoffError) as info:
        optimizer.learn_weights(np.array([0.0, 0.0]))
    assert info.value.kind is ErrorKind.ROUNDOFF_ERROR
    assert optimizer.status is OptimizerStatus.FAILED


def test_gradient_dimension_mismatch_raises_dimension_error(target_quadratic):
    objective_cls, gradient_cls = target_quadratic
    optimizer = LBFGS(objective_cls([3.0, -1.0, 0.0]), gradient_cls([3.0, -1.0]))
    with pytest.raises(DimensionError) as info:
        optimizer.learn_weights(np.zeros(3))
    assert info.value.kind is ErrorKind.DIMENSION_ERROR
    assert isinstance(info.value, OptimizationError)


def test_nan_objective_raises(target_quadratic):
    _, gradient_cls = target_quadratic

    class ExplodingQuadratic:
        def evaluate(self, weights):
            if weights[0] > 0.5:
                return float("nan")
            diff = np.asarray(weights) - np.array([3.0, -1.0])
            return -float(diff @ diff)

    optimizer = LBFGS(ExplodingQuadratic(), gradient_cls([3.0, -1.0]))
    with pytest.raises(NotANumberError) as info:
        optimizer.learn_weights(np.array([0.0, 0.0]))
    assert info.value.kind is ErrorKind.NOT_A_NUMBER
    assert optimizer.status is OptimizerStatus.FAILED


def test_from_config(target_quadratic):
    objective_cls, gradient_cls = target_quadratic
    config = LBFGSConfig(memory=3, max_iterations=7, gradient_tolerance=1e-4)
    optimizer = LBFGS.from_config(objective_cls([1.0]), gradient_cls([1.0]), config)
    assert optimizer.memory == 3
    assert optimizer.max_iterations == 7
    assert optimizer.gradient_tolerance == 1e-4


def test_invalid_line_search_constants(target_quadratic):
    objective_cls, gradient_cls = target_quadratic
    with pytest.raises(ValueError):
        LBFGS(objective_cls([1.0]), gradient_cls([1.0]), c1=0.9, c2=0.1)


class TestCurvatureHistory:
    def test_oldest_pair_is_evicted(self):
        history = CurvatureHistory(memory=2, dimension=2)
        pairs = [(np.array([1.0, 0.0]), np.array([2.0, 0.0])) for _ in range(3)]
        pairs[0] = (np.array([0.5, 0.0]), np.array([1.0, 0.0]))
        for s, y in pairs:
            assert history.push(s, y)
        assert len(history) == 2
        assert all(s[0] == 1.0 for s, _ in history.pairs)

    def test_non_positive_curvature_is_skipped(self):
        history = CurvatureHistory(memory=3, dimension=2)
        assert not history.push(np.array([1.0, 0.0]), np.array([-1.0, 0.0]))
        assert len(history) == 0

    def test_wrong_length_raises_dimension_error(self):
        history = CurvatureHistory(memory=3, dimension=2)
        with pytest.raises(DimensionError):
            history.push(np.array([1.0, 0.0, 0.0]), np.array([1.0, 0.0]))
        with pytest.raises(DimensionError):
            history.apply_inverse_hessian(np.ones(3))

    def test_empty_history_is_identity(self):
        history = CurvatureHistory(memory=3, dimension=3)
        grad = np.array([1.0, -2.0, 0.5])
        np.testing.assert_array_equal(history.apply_inverse_hessian(grad), grad)

    def test_recovers_inverse_of_diagonal_hessian(self):
        hessian = np.diag([2.0, 8.0])
        history = CurvatureHistory(memory=5, dimension=2)
        for s in (np.array([1.0, 0.0]), np.array([0.0, 1.0])):
            history.push(s, hessian @ s)
        np.testing.assert_allclose(history.apply_inverse_hessian(np.array([2.0, 8.0])), [1.0, 1.0])

    def test_memory_must_be_positive(self):
        with pytest.raises(ValueError):
            CurvatureHistory(memory=0, dimension=2)
