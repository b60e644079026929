"""Numeric solvers for linear models.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Type

import numpy as np

from mlstage_core.errors import InvalidParameter
from mlstage_core.utils.cancellation import CancellationToken, check_cancelled

logger = logging.getLogger(__name__)


def sigmoid(z: np.ndarray) -> np.ndarray:
    """Numerically stable logistic function."""
    return 0.5 * (1.0 + np.tanh(0.5 * z))


@dataclass
class LogisticProblem:
    """Elastic-net regularized binary logistic regression.

    Minimizes mean log-loss + reg_param * (elastic_net_param * ||w||_1
    + (1 - elastic_net_param) / 2 * ||w||_2^2). The intercept is not
    penalized.
    """

    X: np.ndarray
    y: np.ndarray
    reg_param: float = 0.0
    elastic_net_param: float = 0.0
    fit_intercept: bool = True
    max_iter: int = 100
    tol: float = 1e-6

    @property
    def l1(self) -> float:
        return self.reg_param * self.elastic_net_param

    @property
    def l2(self) -> float:
        return self.reg_param * (1.0 - self.elastic_net_param)

    def objective(self, w: np.ndarray, b: float) -> float:
        margin = self.X @ w + b
        loss = np.mean(np.logaddexp(0.0, margin) - self.y * margin)
        return float(loss + self.l1 * np.abs(w).sum() + 0.5 * self.l2 * w @ w)


@dataclass
class SolverResult:
    """Solver output."""

    coefficients: np.ndarray
    intercept: float
    iterations: int
    converged: bool
    objective_history: List[float] = field(default_factory=list)


class Solver(ABC):
    """Pluggable optimizer for linear model coefficients."""

    name: str = ""

    @abstractmethod
    def minimize(
        self,
        problem: LogisticProblem,
        cancel_token: Optional[CancellationToken] = None,
    ) -> SolverResult:
        """Solve the problem."""


class ProximalGradientSolver(Solver):
    """Accelerated proximal gradient (FISTA) with a fixed step.

    The smooth part (log-loss + L2) takes gradient steps of size 1/L,
    where L bounds the gradient's Lipschitz constant; the L1 part is
    applied by soft-thresholding.
    """

    name = "proximal_gradient"

    def minimize(
        self,
        problem: LogisticProblem,
        cancel_token: Optional[CancellationToken] = None,
    ) -> SolverResult:
        X, y = problem.X, problem.y
        n, d = X.shape

        design = np.hstack([X, np.ones((n, 1))]) if problem.fit_intercept else X
        spectral = np.linalg.norm(design, 2) ** 2 if design.size else 0.0
        lipschitz = max(spectral / (4.0 * n) + problem.l2, 1e-12)
        step = 1.0 / lipschitz

        w = np.zeros(d)
        b = 0.0
        z_w, z_b = w.copy(), b
        t = 1.0
        history = [problem.objective(w, b)]
        converged = False
        iteration = 0

        for iteration in range(1, problem.max_iter + 1):
            if iteration % 50 == 0:
                check_cancelled(cancel_token, f"solver iteration {iteration}")

            residual = sigmoid(X @ z_w + z_b) - y
            grad_w = X.T @ residual / n + problem.l2 * z_w
            grad_b = residual.mean() if problem.fit_intercept else 0.0

            w_next = _soft_threshold(z_w - step * grad_w, step * problem.l1)
            b_next = z_b - step * grad_b

            t_next = 0.5 * (1.0 + np.sqrt(1.0 + 4.0 * t * t))
            momentum = (t - 1.0) / t_next
            z_w = w_next + momentum * (w_next - w)
            z_b = b_next + momentum * (b_next - b)

            delta = max(np.max(np.abs(w_next - w), initial=0.0), abs(b_next - b))
            w, b, t = w_next, b_next, t_next
            history.append(problem.objective(w, b))

            if delta < problem.tol:
                converged = True
                break

        logger.debug(
            f"{self.name}: {iteration} iterations, objective={history[-1]:.6f}, "
            f"converged={converged}"
        )
        return SolverResult(
            coefficients=w,
            intercept=float(b),
            iterations=iteration,
            converged=converged,
            objective_history=history,
        )


def _soft_threshold(values: np.ndarray, threshold: float) -> np.ndarray:
    if threshold <= 0:
        return values
    return np.sign(values) * np.maximum(np.abs(values) - threshold, 0.0)


SOLVERS: Dict[str, Type[Solver]] = {
    ProximalGradientSolver.name: ProximalGradientSolver,
}


def register_solver(cls: Type[Solver]) -> Type[Solver]:
    """Register a solver class under its name."""
    SOLVERS[cls.name] = cls
    return cls


def get_solver(name: str) -> Solver:
    """Instantiate a registered solver."""
    try:
        return SOLVERS[name]()
    except KeyError:
        raise InvalidParameter(
            f"Unknown solver '{name}'; available: {', '.join(sorted(SOLVERS))}",
            param="solver", value=name,
        ) from None


__all__ = [
    "LogisticProblem",
    "ProximalGradientSolver",
    "Solver",
    "SolverResult",
    "SOLVERS",
    "get_solver",
    "register_solver",
    "sigmoid",
]
