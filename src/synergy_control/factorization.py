"""Non-negative matrix factorization of excitation data.

Decomposes a non-negative (time x actuator) excitation matrix ``V`` into
activations ``W`` (time x synergy) and synergy vectors ``H`` (synergy x
actuator) with ``W @ H ~= V``, using the multiplicative updates of Lee and
Seung for the squared Frobenius error. Each row of ``H`` is one synergy
vector suitable for a :class:`~synergy_control.controllers.SynergyController`.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass

import numpy as np
from tqdm import tqdm

from .config import FactorizationConfig, _get_verbosity
from .exceptions import ConvergenceWarning, InvalidParameterError


@dataclass(frozen=True)
class FactorizationResult:
    """Outcome of a factorization.

    Attributes:
        W: Activations, shape (n_times, n_synergies).
        H: Synergy vectors, shape (n_synergies, n_actuators).
        errors: Frobenius reconstruction error before the first update and
            after every update.
        iterations: Number of updates performed.
        converged: False when the iteration cap was reached first.
    """

    W: np.ndarray
    H: np.ndarray
    errors: np.ndarray
    iterations: int
    converged: bool

    @property
    def n_synergies(self) -> int:
        return self.H.shape[0]

    @property
    def reconstruction(self) -> np.ndarray:
        return self.W @ self.H

    @property
    def final_error(self) -> float:
        return float(self.errors[-1])


def _validate_input(V, n_synergies: int, max_iterations: int, tolerance: float) -> np.ndarray:
    V = np.array(V, dtype=float)
    if V.ndim != 2 or V.size == 0:
        raise InvalidParameterError(
            f"Excitation matrix must be a non-empty 2-D array, got shape {V.shape}.\n"
            f"Rows are time samples and columns are actuators."
        )
    if not np.all(np.isfinite(V)):
        raise InvalidParameterError(
            f"Excitation matrix contains non-finite values "
            f"(NaN={int(np.sum(np.isnan(V)))}, Inf={int(np.sum(np.isinf(V)))})."
        )
    if np.any(V < 0):
        raise InvalidParameterError(
            f"Excitation matrix must be non-negative; found {int(np.sum(V < 0))} "
            f"negative entries, minimum={V.min():.6g}.\n"
            f"Rectify or offset the data before factorizing."
        )
    if n_synergies < 1:
        raise InvalidParameterError(f"n_synergies must be at least 1, got {n_synergies}.")
    if max_iterations < 1:
        raise InvalidParameterError(f"max_iterations must be at least 1, got {max_iterations}.")
    if not np.isfinite(tolerance) or tolerance < 0:
        raise InvalidParameterError(f"tolerance must be non-negative, got {tolerance}.")
    return V


def factorize_nonnegative(
    V,
    n_synergies: int,
    max_iterations: int = 1000,
    tolerance: float = 1.0e-6,
    seed: int | None = None,
    *,
    denominator_floor: float = 1.0e-12,
) -> FactorizationResult:
    """Factorize ``V`` into non-negative ``W`` and ``H`` of rank ``n_synergies``.

    Iteration stops when the relative decrease of the reconstruction error
    drops below ``tolerance``. Reaching ``max_iterations`` first emits a
    :class:`ConvergenceWarning` and returns the best factors found.

    Args:
        V: Non-negative excitation matrix, shape (n_times, n_actuators).
        n_synergies: Target rank K.
        max_iterations: Iteration cap N.
        tolerance: Relative error-decrease threshold.
        seed: Seed for the initial factors; a fixed seed makes every update
            bit-reproducible.
        denominator_floor: Added to update denominators.

    Returns:
        FactorizationResult with the factors and the error history.
    """
    V = _validate_input(V, n_synergies, max_iterations, tolerance)
    if denominator_floor <= 0:
        raise InvalidParameterError(
            f"denominator_floor must be positive, got {denominator_floor}."
        )
    n_times, n_actuators = V.shape
    rng = np.random.default_rng(seed)
    scale = np.sqrt(V.mean() / n_synergies)
    W = scale * rng.random((n_times, n_synergies))
    H = scale * rng.random((n_synergies, n_actuators))

    error = float(np.linalg.norm(V - W @ H))
    errors = [error]
    best = (error, W.copy(), H.copy())
    converged = error == 0.0
    iterations = 0

    progress = tqdm(
        range(max_iterations),
        desc="Factorizing excitations",
        disable=converged or _get_verbosity() == 0,
        leave=False,
    )
    for _ in progress:
        if converged:
            break
        H *= (W.T @ V) / (W.T @ W @ H + denominator_floor)
        W *= (V @ H.T) / (W @ (H @ H.T) + denominator_floor)
        iterations += 1

        previous = error
        error = float(np.linalg.norm(V - W @ H))
        errors.append(error)
        if error < best[0]:
            best = (error, W.copy(), H.copy())
        if previous == 0.0 or (previous - error) / previous < tolerance:
            converged = True

    if not converged:
        warnings.warn(
            f"Factorization did not converge within {max_iterations} iterations "
            f"(last relative decrease above {tolerance:g}); returning the best factors "
            f"found, error={best[0]:.6g}.",
            ConvergenceWarning,
            stacklevel=2,
        )

    _, W_best, H_best = best
    return FactorizationResult(
        W=W_best,
        H=H_best,
        errors=np.asarray(errors),
        iterations=iterations,
        converged=converged,
    )


def normalize_synergies(W: np.ndarray, H: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Rescale each synergy vector to a unit maximum, leaving ``W @ H`` unchanged."""
    peaks = H.max(axis=1)
    scale = np.where(peaks > 0, peaks, 1.0)
    return W * scale[np.newaxis, :], H / scale[:, np.newaxis]


def factorize(V, config: FactorizationConfig | None = None) -> FactorizationResult:
    """Run :func:`factorize_nonnegative` with the settings in ``config``."""
    config = config or FactorizationConfig()
    result = factorize_nonnegative(
        V,
        config.n_synergies,
        max_iterations=config.max_iterations,
        tolerance=config.tolerance,
        seed=config.seed,
        denominator_floor=config.denominator_floor,
    )
    if not config.normalize:
        return result
    W, H = normalize_synergies(result.W, result.H)
    return FactorizationResult(
        W=W,
        H=H,
        errors=result.errors,
        iterations=result.iterations,
        converged=result.converged,
    )
