"""Actuators: convert a scalar control value into applied generalized force.

Every actuator scales its control by an ``optimal_force``. The force for an
evaluation is either that actuation or, when overridden, an externally
supplied value, and it is cached in the :class:`~synergy_control.model.State`.
An actuator whose identity reference (coordinate or path) cannot be resolved
still records its force but applies nothing; the condition is logged so that
the remaining actuators are evaluated normally.
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import numpy as np

from .config import ActuatorConfig
from .exceptions import InvalidParameterError, UnresolvedReferenceError

if TYPE_CHECKING:
    from .model import Model, State

logger = logging.getLogger(__name__)


class Actuator(ABC):
    """Base class for actuators owned by a :class:`~synergy_control.model.Model`.

    Attributes:
        name: Actuator name, unique within its model's force set.
        path: Absolute path assigned when added to a model.
        index: Position in the model's actuator table, or None if detached.
    """

    def __init__(self, name: str, optimal_force: float = 1.0) -> None:
        if not name:
            raise InvalidParameterError("Actuator name must be a non-empty string.")
        self.name = name
        self.set_optimal_force(optimal_force)
        self._model: Model | None = None
        self.index: int | None = None
        self.path: str = name

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, optimal_force={self._optimal_force!r})"

    def _attach(self, model: Model, index: int, path: str) -> None:
        self._model = model
        self.index = index
        self.path = path

    @property
    def model(self) -> Model | None:
        return self._model

    # ------------------------------------------------------------------
    # Optimal force
    # ------------------------------------------------------------------
    @property
    def optimal_force(self) -> float:
        return self._optimal_force

    @optimal_force.setter
    def optimal_force(self, value: float) -> None:
        self.set_optimal_force(value)

    def set_optimal_force(self, value: float) -> None:
        value = float(value)
        if not math.isfinite(value) or value <= 0:
            raise InvalidParameterError(
                f"optimal_force of actuator '{self.name}' must be positive, got {value}.\n"
                f"Stress is defined as |force| / optimal_force."
            )
        self._optimal_force = value

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------
    @property
    @abstractmethod
    def target(self) -> str:
        """Textual identity reference (coordinate or path name)."""

    @property
    @abstractmethod
    def is_resolved(self) -> bool:
        ...

    @abstractmethod
    def connect_to_model(self, model: Model) -> None:
        """Resolve the identity reference; raise UnresolvedReferenceError if missing."""

    @abstractmethod
    def _apply_force(self, force: float, generalized_forces: np.ndarray) -> None:
        ...

    def check(self) -> bool:
        if not self.is_resolved:
            logger.error(
                "%s '%s' actuates an invalid target (%s).",
                type(self).__name__,
                self.name,
                self.target,
            )
            return False
        return True

    # ------------------------------------------------------------------
    # State-dependent quantities
    # ------------------------------------------------------------------
    def _connected(self) -> bool:
        return self._model is not None and self.index is not None

    def get_control(self, state: State) -> float:
        if not self._connected():
            return 0.0
        return float(state.controls[self.index])

    def set_control(self, state: State, value: float) -> None:
        if not self._connected():
            raise UnresolvedReferenceError(
                f"Actuator '{self.name}' is not part of a model; it has no control slot."
            )
        state.controls[self.index] = value

    def compute_actuation(self, state: State) -> float:
        if not self._connected():
            return 0.0
        return self.get_control(state) * self._optimal_force

    def override_actuation(self, state: State, flag: bool) -> None:
        if self._connected():
            state.override_flags[self.index] = bool(flag)

    def is_actuation_overridden(self, state: State) -> bool:
        if not self._connected():
            return False
        return bool(state.override_flags[self.index])

    def set_override_actuation(self, state: State, value: float) -> None:
        if self._connected():
            state.override_values[self.index] = float(value)

    def compute_override_actuation(self, state: State) -> float:
        if not self._connected():
            return 0.0
        return float(state.override_values[self.index])

    def get_force(self, state: State) -> float:
        if not self._connected():
            return 0.0
        return float(state.forces[self.index])

    def get_stress(self, state: State) -> float:
        return abs(self.get_force(state) / self._optimal_force)

    def compute_force(self, state: State, generalized_forces: np.ndarray) -> None:
        """Compute this evaluation's force, cache it, and apply it if possible."""
        if not self._connected():
            return
        if self.is_actuation_overridden(state):
            force = self.compute_override_actuation(state)
        else:
            force = self.compute_actuation(state)
        state.forces[self.index] = force

        if not self.is_resolved:
            try:
                self.connect_to_model(self._model)
            except UnresolvedReferenceError as exc:
                if self._model.config.strict_references:
                    raise
                logger.error(
                    "%s.compute_force: invalid target for '%s', force not applied. %s",
                    type(self).__name__,
                    self.name,
                    exc,
                )
                return
        self._apply_force(force, generalized_forces)

    def record_labels(self) -> list[str]:
        return [self.name]

    def record_values(self, state: State) -> list[float]:
        return [self.get_force(state)]


class CoordinateActuator(Actuator):
    """Applies its force directly as the generalized force on one coordinate."""

    def __init__(self, name: str, coordinate: str = "", optimal_force: float = 1.0) -> None:
        super().__init__(name, optimal_force)
        self.coordinate = coordinate
        self._coordinate_index: int | None = None

    @property
    def target(self) -> str:
        return self.coordinate

    @property
    def is_resolved(self) -> bool:
        return self._connected() and self._coordinate_index is not None

    def connect_to_model(self, model: Model) -> None:
        self._coordinate_index = None
        try:
            index = model.coordinate_index(self.coordinate)
        except UnresolvedReferenceError:
            raise UnresolvedReferenceError(
                f"CoordinateActuator: invalid coordinate ({self.coordinate}) "
                f"specified in actuator '{self.name}'."
            ) from None
        self._coordinate_index = index

    def _apply_force(self, force: float, generalized_forces: np.ndarray) -> None:
        generalized_forces[self._coordinate_index] += force

    def get_speed(self, state: State) -> float:
        if not self.is_resolved:
            raise UnresolvedReferenceError(
                f"Actuator '{self.name}' has no resolved coordinate to read a speed from."
            )
        return float(state.u[self._coordinate_index])

    def get_power(self, state: State) -> float:
        return self.get_force(state) * self.get_speed(state)

    @classmethod
    def create_for_model(
        cls,
        model: Model,
        optimal_force: float = 1.0,
        include_locked_and_constrained: bool = False,
    ) -> list[CoordinateActuator]:
        """Add one ``<coordinate>_actuator`` per coordinate of ``model``.

        Locked and constrained coordinates are skipped unless requested.
        Returns the actuators that were added, already connected.
        """
        added: list[CoordinateActuator] = []
        for coordinate in model.coordinates:
            if not include_locked_and_constrained and not coordinate.is_free:
                continue
            actuator = cls(
                f"{coordinate.name}_actuator",
                coordinate=coordinate.name,
                optimal_force=optimal_force,
            )
            model.add_actuator(actuator)
            actuator.connect_to_model(model)
            added.append(actuator)
        return added


class PathActuator(Actuator):
    """Tension along a moment-arm path, mapped to every spanned coordinate."""

    def __init__(self, name: str, path_name: str = "", optimal_force: float = 1.0) -> None:
        super().__init__(name, optimal_force)
        self.path_name = path_name
        self._moment_arms: list[tuple[int, float]] | None = None

    @property
    def target(self) -> str:
        return self.path_name

    @property
    def is_resolved(self) -> bool:
        return self._connected() and self._moment_arms is not None

    def connect_to_model(self, model: Model) -> None:
        self._moment_arms = None
        try:
            geometry = model.get_path(self.path_name)
            arms = [
                (model.coordinate_index(coord), float(arm))
                for coord, arm in geometry.moment_arms.items()
            ]
        except UnresolvedReferenceError as exc:
            raise UnresolvedReferenceError(
                f"PathActuator: invalid path ({self.path_name}) specified in "
                f"actuator '{self.name}'. {exc}"
            ) from None
        self._moment_arms = arms

    def _apply_force(self, force: float, generalized_forces: np.ndarray) -> None:
        for coord_index, arm in self._moment_arms:
            generalized_forces[coord_index] += force * arm


def build_actuator(config: ActuatorConfig) -> Actuator:
    if config.kind == "coordinate":
        return CoordinateActuator(config.name, config.target, config.optimal_force)
    if config.kind == "path":
        return PathActuator(config.name, config.target, config.optimal_force)
    raise InvalidParameterError(f"Unknown actuator kind {config.kind!r}.")
