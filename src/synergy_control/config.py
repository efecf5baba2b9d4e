"""Configuration primitives for the control-allocation components."""

from __future__ import annotations

import math
import os
from dataclasses import dataclass, field
from typing import Literal, Union

import numpy as np

from .exceptions import InvalidParameterError

INTERPOLATION_ORDERS = (0, 1, 3, 5)


def _get_verbosity() -> int:
    """Get verbosity level from environment: 0=quiet, 1=normal, 2=verbose."""
    return int(os.environ.get("SYNERGY_VERBOSITY", "1"))


def _check_positive(name: str, value: float) -> None:
    if not math.isfinite(value) or value <= 0:
        raise InvalidParameterError(
            f"{name} must be a positive finite number, got {value}.\n"
            f"A zero or negative value has no physical meaning here."
        )


@dataclass(frozen=True)
class ModelConfig:
    """Model-wide evaluation policy.

    Attributes:
        strict_references: When False (default), an actuator whose identity
            reference cannot be resolved during force computation applies no
            force and the condition is logged. When True the same condition
            raises UnresolvedReferenceError.
    """

    strict_references: bool = False


@dataclass(frozen=True)
class ActuatorConfig:
    """Declarative description of one actuator.

    ``target`` is a coordinate name for ``kind="coordinate"`` and a
    moment-arm path name for ``kind="path"``.
    """

    name: str
    target: str
    optimal_force: float = 1.0
    kind: Literal["coordinate", "path"] = "coordinate"

    def __post_init__(self) -> None:
        if not self.name:
            raise InvalidParameterError("Actuator name must be a non-empty string.")
        if self.kind not in ("coordinate", "path"):
            raise InvalidParameterError(
                f"Unknown actuator kind {self.kind!r}; expected 'coordinate' or 'path'."
            )
        _check_positive("optimal_force", self.optimal_force)


@dataclass(frozen=True)
class PrescribedControllerConfig:
    """Prescribed controller: one function of time per actuator."""

    name: str
    actuators: tuple[str, ...] = ()
    interpolation_order: int = 1
    kind: Literal["prescribed"] = field(default="prescribed", init=False)

    def __post_init__(self) -> None:
        if self.interpolation_order not in INTERPOLATION_ORDERS:
            raise InvalidParameterError(
                f"interpolation_order must be one of {INTERPOLATION_ORDERS}, "
                f"got {self.interpolation_order}.\n"
                f"Use 0 (constant), 1 (linear), 3 (cubic) or 5 (quintic)."
            )


@dataclass(frozen=True)
class SynergyControllerConfig:
    """Synergy controller: K synergy vectors over the listed actuators."""

    name: str
    actuators: tuple[str, ...] = ()
    synergy_vectors: tuple[tuple[float, ...], ...] = ()
    kind: Literal["synergy"] = field(default="synergy", init=False)


ControllerConfig = Union[PrescribedControllerConfig, SynergyControllerConfig]


@dataclass(frozen=True)
class FactorizationConfig:
    """Settings for non-negative matrix factorization.

    Attributes:
        n_synergies: Target rank K.
        max_iterations: Iteration cap N; reaching it is reported, not fatal.
        tolerance: Relative decrease in reconstruction error below which the
            iteration stops.
        seed: Seed for the non-negative random initialization. None draws
            fresh entropy; any integer gives bit-reproducible updates.
        denominator_floor: Positive constant added to update denominators.
        normalize: Rescale synergy vectors to unit maximum after fitting.
    """

    n_synergies: int = 5
    max_iterations: int = 1000
    tolerance: float = 1.0e-6
    seed: int | None = None
    denominator_floor: float = 1.0e-12
    normalize: bool = True

    def __post_init__(self) -> None:
        if self.n_synergies < 1:
            raise InvalidParameterError(
                f"n_synergies must be at least 1, got {self.n_synergies}."
            )
        if self.max_iterations < 1:
            raise InvalidParameterError(
                f"max_iterations must be at least 1, got {self.max_iterations}."
            )
        if not np.isfinite(self.tolerance) or self.tolerance < 0:
            raise InvalidParameterError(
                f"tolerance must be a non-negative finite number, got {self.tolerance}."
            )
        _check_positive("denominator_floor", self.denominator_floor)
