"""Control functions of time used by prescribed controllers.

A control function maps a scalar (or array of) time to a control value.
Sampled functions are built from tabulated ``(time, value)`` pairs with a
piecewise interpolation of order 0 (step), 1 (linear), 3 (cubic) or 5
(quintic). Queries outside the sampled range are clamped to the first or
last sample time.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

import numpy as np
from scipy.interpolate import interp1d, make_interp_spline

from .config import INTERPOLATION_ORDERS
from .exceptions import InvalidParameterError

logger = logging.getLogger(__name__)


class ControlFunction(ABC):
    """A scalar function of time."""

    name: str = ""

    @abstractmethod
    def _evaluate(self, t: np.ndarray) -> np.ndarray:
        ...

    def evaluate(self, t: float | np.ndarray) -> float | np.ndarray:
        values = self._evaluate(np.asarray(t, dtype=float))
        if np.ndim(t) == 0:
            return float(values)
        return values

    def __call__(self, t: float | np.ndarray) -> float | np.ndarray:
        return self.evaluate(t)


class Constant(ControlFunction):
    def __init__(self, value: float, name: str = "") -> None:
        if not np.isfinite(value):
            raise InvalidParameterError(f"Constant value must be finite, got {value}.")
        self.value = float(value)
        self.name = name

    def _evaluate(self, t: np.ndarray) -> np.ndarray:
        return np.full(np.shape(t), self.value)

    def __repr__(self) -> str:
        return f"Constant({self.value!r}, name={self.name!r})"


class SampledFunction(ControlFunction):
    """Piecewise interpolant of tabulated samples.

    Attributes:
        times: Strictly increasing sample times.
        values: Sample values, same length as ``times``.
        order: Interpolation order actually used. This can be lower than the
            requested order when there are too few samples to support it.
        requested_order: The order asked for at construction.
    """

    def __init__(self, times, values, order: int = 1, name: str = "") -> None:
        times = np.asarray(times, dtype=float)
        values = np.asarray(values, dtype=float)
        if order not in INTERPOLATION_ORDERS:
            raise InvalidParameterError(
                f"Interpolation order must be one of {INTERPOLATION_ORDERS}, got {order}."
            )
        if times.ndim != 1 or values.ndim != 1:
            raise InvalidParameterError("Sample times and values must be 1-D arrays.")
        if times.size == 0:
            raise InvalidParameterError(
                f"Function '{name}' has no samples.\n"
                f"At least one (time, value) pair is required."
            )
        if times.size != values.size:
            raise InvalidParameterError(
                f"Function '{name}' has {times.size} times but {values.size} values.\n"
                f"Times and values must be parallel arrays."
            )
        if not (np.all(np.isfinite(times)) and np.all(np.isfinite(values))):
            raise InvalidParameterError(
                f"Function '{name}' contains non-finite samples (NaN or Inf)."
            )
        if times.size > 1 and np.any(np.diff(times) <= 0):
            raise InvalidParameterError(
                f"Sample times for '{name}' must be strictly increasing.\n"
                f"Check the time column for duplicated or unsorted rows."
            )

        self.name = name
        self.times = times
        self.values = values
        self.requested_order = order
        self.order = _supported_order(order, times.size)
        if self.order != order:
            logger.debug(
                "Function '%s': %d samples cannot support order %d, using order %d.",
                name,
                times.size,
                order,
                self.order,
            )
        self._interpolant = self._build()

    def _build(self):
        if self.times.size == 1:
            return None
        if self.order == 0:
            return interp1d(self.times, self.values, kind="previous", assume_sorted=True)
        return make_interp_spline(self.times, self.values, k=self.order)

    def _evaluate(self, t: np.ndarray) -> np.ndarray:
        if self._interpolant is None:
            return np.full(np.shape(t), self.values[0])
        clamped = np.clip(t, self.times[0], self.times[-1])
        return np.asarray(self._interpolant(clamped), dtype=float)

    @property
    def time_range(self) -> tuple[float, float]:
        return float(self.times[0]), float(self.times[-1])

    def __repr__(self) -> str:
        return (
            f"SampledFunction(name={self.name!r}, n_samples={self.times.size}, "
            f"order={self.order})"
        )


def _supported_order(order: int, n_samples: int) -> int:
    # A spline of degree k needs at least k + 1 samples.
    for candidate in sorted(INTERPOLATION_ORDERS, reverse=True):
        if candidate <= order and n_samples >= candidate + 1:
            return candidate
    return 0


def create_function(times, values, order: int = 1, name: str = "") -> ControlFunction:
    """Build a control function from samples; a single sample gives a Constant."""
    values = np.asarray(values, dtype=float)
    if order not in INTERPOLATION_ORDERS:
        raise InvalidParameterError(
            f"Interpolation order must be one of {INTERPOLATION_ORDERS}, got {order}."
        )
    if np.size(times) == 1 and values.size == 1:
        return Constant(float(values.reshape(-1)[0]), name=name)
    return SampledFunction(times, values, order=order, name=name)
