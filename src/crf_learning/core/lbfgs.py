"""Limited-memory BFGS maximization of an objective/gradient pair.

The optimizer minimizes the negated objective. Search directions come from the
two-loop recursion over a bounded history of ``(s, y)`` curvature pairs and
step lengths from a strong Wolfe line search (``scipy.optimize.line_search``).

Terminal failures are raised as typed exceptions and no weight vector is
returned for a failed run:

* ``RoundoffError``: the line search finds no acceptable step.
* ``DimensionError``: a gradient or history vector has the wrong length.
* ``NotANumberError``: an evaluation produced NaN or Inf.
"""

import logging
import time
import warnings
from collections import deque

import numpy as np
import numpy.typing as npt
from scipy.optimize import line_search

from ..config.config import LBFGSConfig
from ..utils.exceptions import (
    DimensionError,
    InvalidDimensionError,
    NotANumberError,
    OptimizationError,
    RoundoffError,
    check_finite,
)
from .models import LBFGSResult, OptimizerStatus
from .types import GradientProtocol, ObjectiveProtocol
from .weights import as_weight_vector

logger = logging.getLogger(__name__)

# Pairs with y's <= CURVATURE_EPS * y'y would make the inverse Hessian indefinite.
CURVATURE_EPS = 1e-10


class CurvatureHistory:
    """Bounded FIFO of ``(s, y)`` pairs; the oldest pair is evicted on overflow."""

    def __init__(self, memory: int, dimension: int):
        if memory < 1:
            raise ValueError(f"memory must be >= 1, got {memory}")
        self.memory = memory
        self.dimension = dimension
        self._pairs: deque[tuple[np.ndarray, np.ndarray, float]] = deque(maxlen=memory)

    def __len__(self) -> int:
        return len(self._pairs)

    @property
    def pairs(self) -> list[tuple[np.ndarray, np.ndarray]]:
        return [(s, y) for s, y, _ in self._pairs]

    def clear(self) -> None:
        self._pairs.clear()

    def push(self, s: np.ndarray, y: np.ndarray) -> bool:
        """Store a pair. Returns False when the pair fails the curvature condition."""
        for name, vector in (("step", s), ("gradient delta", y)):
            if vector.shape != (self.dimension,):
                raise DimensionError(
                    f"History {name} has shape {vector.shape}, expected ({self.dimension},)"
                )
        sy = float(s @ y)
        if not sy > CURVATURE_EPS * float(y @ y):
            logger.debug("Skipping curvature pair with s'y = %.3e", sy)
            return False
        self._pairs.append((s.copy(), y.copy(), 1.0 / sy))
        return True

    def apply_inverse_hessian(self, grad: np.ndarray) -> np.ndarray:
        """Return ``H @ grad`` for the implicit inverse-Hessian approximation ``H``."""
        if grad.shape != (self.dimension,):
            raise DimensionError(f"Gradient has shape {grad.shape}, expected ({self.dimension},)")
        q = grad.copy()
        alphas = []
        for s, y, rho in reversed(self._pairs):
            alpha = rho * float(s @ q)
            alphas.append(alpha)
            q -= alpha * y

        if self._pairs:
            s, y, _ = self._pairs[-1]
            q *= float(s @ y) / float(y @ y)

        for (s, y, rho), alpha in zip(self._pairs, reversed(alphas)):
            beta = rho * float(y @ q)
            q += (alpha - beta) * s
        return q


class LBFGS:
    """Maximize ``objective`` using ``gradient`` with limited-memory BFGS.

    ``objective`` and ``gradient`` must describe the same function (for the
    log-likelihood, the same model and the same ``lambda_reg``).
    """

    def __init__(
        self,
        objective: ObjectiveProtocol,
        gradient: GradientProtocol,
        memory: int = 10,
        max_iterations: int = 100,
        gradient_tolerance: float = 1e-5,
        relative_tolerance: float = 1e-10,
        max_seconds: float | None = None,
        c1: float = 1e-4,
        c2: float = 0.9,
    ):
        if not 0 < c1 < c2 < 1:
            raise ValueError(f"Line search constants must satisfy 0 < c1 < c2 < 1, got {c1}, {c2}")
        self.objective = objective
        self.gradient = gradient
        self.memory = memory
        self.max_iterations = max_iterations
        self.gradient_tolerance = gradient_tolerance
        self.relative_tolerance = relative_tolerance
        self.max_seconds = max_seconds
        self.c1 = c1
        self.c2 = c2
        self.status = OptimizerStatus.INIT
        self._evaluations = 0
        self._cached_point: np.ndarray | None = None
        self._cached_gradient: np.ndarray | None = None

    @classmethod
    def from_config(
        cls, objective: ObjectiveProtocol, gradient: GradientProtocol, config: LBFGSConfig
    ) -> "LBFGS":
        return cls(
            objective,
            gradient,
            memory=config.memory,
            max_iterations=config.max_iterations,
            gradient_tolerance=config.gradient_tolerance,
            relative_tolerance=config.relative_tolerance,
            max_seconds=config.max_seconds,
            c1=config.c1,
            c2=config.c2,
        )

    # Minimization view: f(x) = -objective(x), g(x) = -gradient(x).

    def _loss(self, x: np.ndarray) -> float:
        self._evaluations += 1
        try:
            value = self.objective.evaluate(x)
        except InvalidDimensionError as exc:
            raise DimensionError(str(exc)) from exc
        return -check_finite(value, "objective value")

    def _loss_gradient(self, x: np.ndarray) -> np.ndarray:
        if self._cached_point is not None and np.array_equal(x, self._cached_point):
            return self._cached_gradient.copy()
        out = np.zeros(x.size, dtype=np.float64)
        try:
            self.gradient.evaluate(out, x)
        except InvalidDimensionError as exc:
            raise DimensionError(str(exc)) from exc
        if out.shape != x.shape:
            raise DimensionError(f"Gradient has shape {out.shape}, expected {x.shape}")
        if not np.all(np.isfinite(out)):
            raise NotANumberError("Gradient contains NaN or Inf")
        out = -out
        self._cached_point = x.copy()
        self._cached_gradient = out
        return out.copy()

    def _search(self, x, direction, g, f, f_prev):
        with warnings.catch_warnings():
            # LineSearchWarning is a RuntimeWarning; a failed search is reported as RoundoffError.
            warnings.simplefilter("ignore", RuntimeWarning)
            alpha, _, _, f_new, _, _ = line_search(
                self._loss,
                self._loss_gradient,
                x,
                direction,
                gfk=g,
                old_fval=f,
                old_old_fval=f_prev,
                c1=self.c1,
                c2=self.c2,
            )
        return alpha, f_new

    def learn_weights(self, initial_weights: npt.NDArray[np.float64]) -> LBFGSResult:
        """Run L-BFGS from ``initial_weights`` and return the learned weights.

        ``initial_weights`` is copied and never modified.

        Raises:
            RoundoffError: If the line search cannot find an acceptable step.
            DimensionError: If a gradient or history vector has the wrong length.
            NotANumberError: If an evaluation yields NaN or Inf.

        """
        x = as_weight_vector(initial_weights)
        self.status = OptimizerStatus.INIT
        self._evaluations = 0
        self._cached_point = self._cached_gradient = None
        try:
            return self._run(x)
        except OptimizationError as exc:
            self.status = OptimizerStatus.FAILED
            logger.error("L-BFGS failed (%s): %s", exc.kind.value, exc)
            raise
        finally:
            self._cached_point = self._cached_gradient = None

    def _run(self, x: np.ndarray) -> LBFGSResult:
        history = CurvatureHistory(self.memory, x.size)
        start = time.monotonic()

        f = self._loss(x)
        g = self._loss_gradient(x)
        # Initial step guess of roughly unit length, as in scipy's own BFGS driver.
        f_prev = f + float(np.linalg.norm(g)) / 2
        trace = [-f]
        iteration = 0

        while True:
            gnorm = float(np.max(np.abs(g))) if g.size else 0.0
            if gnorm <= self.gradient_tolerance:
                self.status = OptimizerStatus.CONVERGED
                break
            if iteration >= self.max_iterations:
                self.status = OptimizerStatus.MAX_ITERATIONS_REACHED
                break
            if self.max_seconds is not None and time.monotonic() - start >= self.max_seconds:
                self.status = OptimizerStatus.TIME_LIMIT_REACHED
                break
            self.status = OptimizerStatus.ITERATING

            direction = -history.apply_inverse_hessian(g)
            if not float(g @ direction) < 0:
                logger.debug("History direction is not a descent direction; resetting history")
                history.clear()
                direction = -g

            alpha, f_new = self._search(x, direction, g, f, f_prev)
            if alpha is None and len(history):
                logger.debug("Line search failed along quasi-Newton direction; retrying steepest ascent")
                history.clear()
                direction = -g
                alpha, f_new = self._search(x, direction, g, f, f_prev)
            if alpha is None:
                raise RoundoffError(
                    f"Line search could not find an acceptable step at iteration {iteration + 1}"
                )

            x_new = x + alpha * direction
            f_new = check_finite(f_new if f_new is not None else self._loss(x_new), "objective value")
            g_new = self._loss_gradient(x_new)
            history.push(x_new - x, g_new - g)

            relative_change = abs(f - f_new) / max(abs(f), abs(f_new), 1.0)
            f_prev, x, f, g = f, x_new, f_new, g_new
            iteration += 1
            trace.append(-f)
            logger.info(
                "Iteration %d: objective = %.6f, |grad|_inf = %.3e, step = %.3e",
                iteration,
                -f,
                float(np.max(np.abs(g))) if g.size else 0.0,
                alpha,
            )
            if relative_change <= self.relative_tolerance:
                self.status = OptimizerStatus.CONVERGED
                break

        elapsed = time.monotonic() - start
        logger.info(
            "L-BFGS finished with status %s after %d iteration(s) in %.3f s",
            self.status.value,
            iteration,
            elapsed,
        )
        return LBFGSResult(
            weights=x.copy(),
            status=self.status,
            iterations=iteration,
            objective_value=-f,
            gradient_norm=float(np.max(np.abs(g))) if g.size else 0.0,
            function_evaluations=self._evaluations,
            elapsed_seconds=elapsed,
            objective_trace=trace,
        )
