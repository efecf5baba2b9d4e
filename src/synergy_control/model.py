"""Model context consumed by actuators and controllers.

The model owns ordered tables of coordinates, moment-arm paths, actuators
and controllers. Components refer to one another through indices into these
tables, established by a resolution step, never through direct object
references that could dangle across model copies. Everything that changes
from one evaluation to the next lives in a :class:`State`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Mapping

import numpy as np

from .config import ModelConfig
from .exceptions import (
    ActuatorResolutionError,
    InvalidParameterError,
    UnresolvedReferenceError,
)

if TYPE_CHECKING:
    from .actuators import Actuator
    from .controllers import Controller

logger = logging.getLogger(__name__)

FORCESET = "/forceset"
CONTROLLERSET = "/controllerset"


@dataclass(slots=True)
class Coordinate:
    """A generalized coordinate that actuators can drive.

    Attributes:
        name: Unique coordinate name (e.g., "knee_angle_r").
        default_value: Initial coordinate value used by ``Model.init_state``.
        default_speed: Initial coordinate speed.
        locked: Locked coordinates cannot move.
        constrained: Coordinates whose value is dictated by a constraint.
    """

    name: str
    default_value: float = 0.0
    default_speed: float = 0.0
    locked: bool = False
    constrained: bool = False

    @property
    def is_free(self) -> bool:
        return not (self.locked or self.constrained)


@dataclass(slots=True)
class MomentArmPath:
    """A muscle path reduced to constant moment arms about each spanned coordinate."""

    name: str
    moment_arms: Mapping[str, float]

    def __post_init__(self) -> None:
        if not self.moment_arms:
            raise InvalidParameterError(
                f"Path '{self.name}' spans no coordinates.\n"
                f"Provide at least one (coordinate, moment arm) pair."
            )
        for coord, arm in self.moment_arms.items():
            if not np.isfinite(arm):
                raise InvalidParameterError(
                    f"Moment arm of path '{self.name}' about '{coord}' is not finite: {arm}."
                )
        self.moment_arms = dict(self.moment_arms)


@dataclass(slots=True)
class State:
    """Evaluation context for one instant.

    Arrays indexed by actuator follow the model's actuator table; ``q`` and
    ``u`` follow the coordinate table. ``inputs`` carries values supplied by
    an external solver for each evaluation, keyed by input path.
    """

    time: float
    q: np.ndarray
    u: np.ndarray
    controls: np.ndarray
    forces: np.ndarray
    override_flags: np.ndarray
    override_values: np.ndarray
    inputs: dict[str, float] = field(default_factory=dict)

    def set_input(self, path: str, value: float) -> None:
        self.inputs[path] = float(value)

    def get_input(self, path: str, default: float = 0.0) -> float:
        return self.inputs.get(path, default)


class Model:
    """Tables of model components plus the evaluation entry points.

    Attributes:
        name: Model name.
        config: Model-wide evaluation policy.
        coordinates: Coordinates in insertion order.
        paths: Moment-arm paths keyed by name.
        actuators: Actuators in insertion order (the ``/forceset``).
        controllers: Controllers in insertion order (the ``/controllerset``).
    """

    def __init__(self, name: str = "model", config: ModelConfig | None = None) -> None:
        self.name = name
        self.config = config or ModelConfig()
        self.coordinates: list[Coordinate] = []
        self.paths: dict[str, MomentArmPath] = {}
        self.actuators: list[Actuator] = []
        self.controllers: list[Controller] = []
        self._coordinate_lookup: dict[str, int] = {}

    def __repr__(self) -> str:
        return (
            f"Model(name={self.name!r}, coordinates={len(self.coordinates)}, "
            f"actuators={len(self.actuators)}, controllers={len(self.controllers)})"
        )

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------
    def add_coordinate(self, coordinate: Coordinate) -> int:
        if coordinate.name in self._coordinate_lookup:
            raise InvalidParameterError(
                f"Model '{self.name}' already has a coordinate named '{coordinate.name}'."
            )
        self.coordinates.append(coordinate)
        index = len(self.coordinates) - 1
        self._coordinate_lookup[coordinate.name] = index
        return index

    def add_path(self, path: MomentArmPath) -> None:
        if path.name in self.paths:
            raise InvalidParameterError(
                f"Model '{self.name}' already has a path named '{path.name}'."
            )
        self.paths[path.name] = path

    def add_actuator(self, actuator: Actuator, path: str | None = None) -> int:
        """Append ``actuator`` to the force set and return its model index.

        The actuator's absolute path defaults to ``/forceset/<name>``.
        """
        path = path or f"{FORCESET}/{actuator.name}"
        if path in self.actuator_paths:
            raise InvalidParameterError(
                f"Model '{self.name}' already has an actuator at '{path}'."
            )
        self.actuators.append(actuator)
        index = len(self.actuators) - 1
        actuator._attach(self, index, path)
        return index

    def add_controller(self, controller: Controller) -> None:
        if any(existing.name == controller.name for existing in self.controllers):
            raise InvalidParameterError(
                f"Model '{self.name}' already has a controller named '{controller.name}'."
            )
        self.controllers.append(controller)
        controller.path = f"{CONTROLLERSET}/{controller.name}"

    def remove_controller(self, name: str) -> Controller:
        """Detach and return the controller called ``name``."""
        controller = self.get_controller(name)
        self.controllers.remove(controller)
        return controller

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------
    @property
    def actuator_paths(self) -> list[str]:
        return [actuator.path for actuator in self.actuators]

    @property
    def num_coordinates(self) -> int:
        return len(self.coordinates)

    @property
    def num_actuators(self) -> int:
        return len(self.actuators)

    def find_actuator_index(self, label: str) -> int:
        """Resolve an actuator label, by short name first and absolute path second."""
        by_name = [i for i, act in enumerate(self.actuators) if act.name == label]
        if len(by_name) == 1:
            return by_name[0]
        if len(by_name) > 1:
            candidates = ", ".join(self.actuators[i].path for i in by_name)
            raise ActuatorResolutionError(
                f"Actuator label '{label}' is ambiguous in model '{self.name}'.\n"
                f"Matching actuators: {candidates}\n"
                f"Use the absolute path to select one."
            )
        for i, act in enumerate(self.actuators):
            if act.path == label:
                return i
        raise ActuatorResolutionError(
            f"No actuator named or located at '{label}' in model '{self.name}'.\n"
            f"Available actuators: {', '.join(self.actuator_paths) or '(none)'}"
        )

    def get_actuator(self, label: str) -> Actuator:
        return self.actuators[self.find_actuator_index(label)]

    def get_controller(self, name: str) -> Controller:
        for controller in self.controllers:
            if controller.name == name or controller.path == name:
                return controller
        raise LookupError(f"No controller named '{name}' in model '{self.name}'.")

    def coordinate_index(self, name: str) -> int:
        try:
            return self._coordinate_lookup[name]
        except KeyError:
            raise UnresolvedReferenceError(
                f"Coordinate '{name}' does not exist in model '{self.name}'."
            ) from None

    def get_path(self, name: str) -> MomentArmPath:
        try:
            return self.paths[name]
        except KeyError:
            raise UnresolvedReferenceError(
                f"Path '{name}' does not exist in model '{self.name}'."
            ) from None

    # ------------------------------------------------------------------
    # Connection and evaluation
    # ------------------------------------------------------------------
    def finalize_connections(self, strict: bool = True) -> None:
        """Resolve every actuator's identity and every controller's actuator labels.

        With ``strict=False`` actuators whose identity cannot be resolved are
        logged and left unresolved; they will retry when forces are computed.
        Controller resolution errors always propagate.
        """
        for actuator in self.actuators:
            try:
                actuator.connect_to_model(self)
            except UnresolvedReferenceError as exc:
                if strict:
                    raise
                logger.error("Actuator '%s' left unresolved: %s", actuator.name, exc)
        for controller in self.controllers:
            controller.connect_to_model(self)

    def init_state(self, time: float = 0.0) -> State:
        n_act = self.num_actuators
        return State(
            time=float(time),
            q=np.array([c.default_value for c in self.coordinates], dtype=float),
            u=np.array([c.default_speed for c in self.coordinates], dtype=float),
            controls=np.zeros(n_act),
            forces=np.zeros(n_act),
            override_flags=np.zeros(n_act, dtype=bool),
            override_values=np.zeros(n_act),
        )

    def compute_controls(self, state: State) -> np.ndarray:
        """Fill ``state.controls`` from every controller and return a copy.

        Controllers that share an actuator add their contributions.
        """
        controls = np.zeros(self.num_actuators)
        for controller in self.controllers:
            values = controller.compute_controls(state)
            np.add.at(controls, controller.actuator_indices, values)
        state.controls[:] = controls
        return controls.copy()

    def compute_forces(self, state: State) -> np.ndarray:
        """Return the generalized forces produced by all actuators, one per coordinate."""
        generalized_forces = np.zeros(self.num_coordinates)
        for actuator in self.actuators:
            actuator.compute_force(state, generalized_forces)
        return generalized_forces

    def realize(self, state: State) -> np.ndarray:
        self.compute_controls(state)
        return self.compute_forces(state)
