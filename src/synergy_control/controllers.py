"""Controllers: produce one control value per managed actuator.

Two concrete variants exist and they form a closed set:

- :class:`PrescribedController` evaluates one function of time per actuator.
- :class:`SynergyController` expands a few externally supplied synergy
  excitations through fixed non-negative synergy vectors.

A controller refers to its actuators by label until it is connected to a
model, at which point each label is resolved to an index into the model's
actuator table. Control sources (functions, synergy vectors) are owned by
the controller; per-evaluation inputs (synergy excitations) are read from
the :class:`~synergy_control.model.State`.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, ClassVar, Iterable, Sequence, Union

import numpy as np
import pandas as pd

from .actuators import Actuator
from .config import (
    ControllerConfig,
    INTERPOLATION_ORDERS,
    PrescribedControllerConfig,
    SynergyControllerConfig,
)
from .data_io import read_table
from .exceptions import (
    ActuatorResolutionError,
    ControllerNotReadyError,
    DimensionMismatchError,
    InvalidParameterError,
    UnmatchedColumnError,
)
from .functions import ControlFunction, create_function

if TYPE_CHECKING:
    from .model import Model, State

logger = logging.getLogger(__name__)

SYNERGY_INPUT_PREFIX = "synergy_excitation"


class ControllerStatus(Enum):
    UNCONFIGURED = "unconfigured"
    ATTACHED = "attached"
    READY = "ready"


class Controller(ABC):
    """Common actuator bookkeeping and the ``compute_controls`` interface.

    Attributes:
        name: Controller name, unique within its model.
        path: ``/controllerset/<name>`` once added to a model.
    """

    kind: ClassVar[str]

    def __init__(self, name: str) -> None:
        if not name:
            raise InvalidParameterError("Controller name must be a non-empty string.")
        self.name = name
        self.path = name
        self._labels: list[str] = []
        self._indices: list[int] | None = None
        self._model: Model | None = None

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(name={self.name!r}, actuators={len(self._labels)}, "
            f"status={self.status.value})"
        )

    # ------------------------------------------------------------------
    # Actuator set
    # ------------------------------------------------------------------
    @property
    def actuator_labels(self) -> tuple[str, ...]:
        return tuple(self._labels)

    @property
    def actuator_indices(self) -> list[int]:
        return list(self._indices) if self._indices is not None else []

    @property
    def num_actuators(self) -> int:
        return len(self._labels)

    @property
    def is_connected(self) -> bool:
        return self._model is not None and self._indices is not None

    def add_actuator(self, actuator: Actuator | str) -> int:
        """Add an actuator (object or label) and return its position in this controller.

        When the controller is already connected the label is resolved now;
        otherwise resolution happens in :meth:`connect_to_model`.
        """
        if isinstance(actuator, Actuator):
            label = actuator.path if actuator.model is not None else actuator.name
        else:
            label = str(actuator)
        self._before_actuator_added(label)
        if self.is_connected:
            index = self._model.find_actuator_index(label)
            if index in self._indices:
                raise ActuatorResolutionError(
                    f"Actuator '{label}' is already controlled by '{self.name}'."
                )
            self._indices.append(index)
            label = self._model.actuators[index].path
        elif label in self._labels:
            raise ActuatorResolutionError(
                f"Actuator '{label}' is already controlled by '{self.name}'."
            )
        self._labels.append(label)
        self._after_actuator_added()
        return len(self._labels) - 1

    def set_actuators(self, actuators: Iterable[Actuator | str]) -> None:
        """Replace the managed actuators; existing control sources are discarded."""
        self._labels = []
        self._indices = [] if self.is_connected else None
        self._clear_control_sources()
        for actuator in actuators:
            self.add_actuator(actuator)

    def _before_actuator_added(self, label: str) -> None:
        pass

    def _after_actuator_added(self) -> None:
        pass

    @abstractmethod
    def _clear_control_sources(self) -> None:
        ...

    def _position_of(self, index_or_label: int | str) -> int:
        """Position of an actuator within this controller, by ordinal or label."""
        if isinstance(index_or_label, (int, np.integer)):
            position = int(index_or_label)
            if not 0 <= position < self.num_actuators:
                raise ActuatorResolutionError(
                    f"Actuator index {position} is out of range for controller "
                    f"'{self.name}' with {self.num_actuators} actuators."
                )
            return position
        label = str(index_or_label)
        if self.is_connected:
            model_index = self._model.find_actuator_index(label)
            if model_index in self._indices:
                return self._indices.index(model_index)
        elif label in self._labels:
            return self._labels.index(label)
        raise ActuatorResolutionError(
            f"Actuator '{label}' is not controlled by '{self.name}'.\n"
            f"Controlled actuators: {', '.join(self._labels) or '(none)'}"
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def connect_to_model(self, model: Model) -> None:
        """Resolve actuator labels against ``model``'s actuator table.

        If connection fails the controller is left exactly as it was.
        """
        indices: list[int] = []
        for label in self._labels:
            index = model.find_actuator_index(label)
            if index in indices:
                raise ActuatorResolutionError(
                    f"Labels of controller '{self.name}' resolve to the same actuator "
                    f"'{model.actuators[index].path}' more than once."
                )
            indices.append(index)
        saved = {
            key: list(value) if isinstance(value, list) else value
            for key, value in vars(self).items()
        }
        self._model = model
        self._indices = indices
        self._labels = [model.actuators[i].path for i in indices]
        try:
            self._extend_connect_to_model(model)
        except Exception:
            vars(self).clear()
            vars(self).update(saved)
            raise

    def _extend_connect_to_model(self, model: Model) -> None:
        pass

    @abstractmethod
    def _has_control_source(self, position: int) -> bool:
        ...

    @property
    def status(self) -> ControllerStatus:
        if not self._labels:
            return ControllerStatus.UNCONFIGURED
        if self.is_connected and all(
            self._has_control_source(i) for i in range(self.num_actuators)
        ):
            return ControllerStatus.READY
        return ControllerStatus.ATTACHED

    @abstractmethod
    def compute_controls(self, state: State) -> np.ndarray:
        """Return one control value per controlled actuator, in attachment order."""


class PrescribedController(Controller):
    """Each actuator's control is an independent function of time.

    Functions can be assigned directly with
    :meth:`prescribe_control_for_actuator` or built, on connection, from a
    table whose index is time and whose column labels are actuator names or
    absolute paths. Columns that match no actuator are collected in
    :attr:`column_errors` and logged; the others are used.
    """

    kind: ClassVar[str] = "prescribed"

    def __init__(
        self,
        name: str,
        controls_table: pd.DataFrame | None = None,
        interpolation_order: int = 1,
        controls_file: str | Path | None = None,
    ) -> None:
        super().__init__(name)
        if interpolation_order not in INTERPOLATION_ORDERS:
            raise InvalidParameterError(
                f"interpolation_order must be one of {INTERPOLATION_ORDERS}, "
                f"got {interpolation_order}."
            )
        self.interpolation_order = interpolation_order
        self.controls_table = controls_table
        self.controls_file = Path(controls_file) if controls_file is not None else None
        self.column_errors: list[UnmatchedColumnError] = []
        self._functions: list[ControlFunction | None] = []
        self._pending: list[tuple[str, ControlFunction]] = []

    @classmethod
    def from_table(
        cls,
        name: str,
        table: pd.DataFrame,
        interpolation_order: int = 1,
    ) -> PrescribedController:
        return cls(name, controls_table=table, interpolation_order=interpolation_order)

    def _after_actuator_added(self) -> None:
        self._functions.append(None)

    def _clear_control_sources(self) -> None:
        self._functions = []
        self._pending = []

    def _has_control_source(self, position: int) -> bool:
        return self._functions[position] is not None

    def prescribe_control_for_actuator(
        self, index_or_label: int | str, function: ControlFunction
    ) -> None:
        """Assign ``function`` to one actuator, replacing any previous function.

        A label that is not yet known is kept and resolved on connection.
        """
        if not isinstance(function, ControlFunction):
            raise InvalidParameterError(
                f"Expected a ControlFunction, got {type(function).__name__}."
            )
        try:
            position = self._position_of(index_or_label)
        except ActuatorResolutionError:
            if self.is_connected or isinstance(index_or_label, (int, np.integer)):
                raise
            self._pending = [pair for pair in self._pending if pair[0] != index_or_label]
            self._pending.append((str(index_or_label), function))
            return
        self._functions[position] = function

    def get_function(self, index_or_label: int | str) -> ControlFunction | None:
        return self._functions[self._position_of(index_or_label)]

    def _extend_connect_to_model(self, model: Model) -> None:
        pending, self._pending = self._pending, []
        for label, function in pending:
            self._functions[self._position_of(label)] = function

        self.column_errors = []
        table = self._load_table()
        if table is not None:
            self._functions_from_table(model, table)

        missing = [self._labels[i] for i in range(self.num_actuators) if self._functions[i] is None]
        if missing:
            logger.warning(
                "Controller '%s': no control function for %s; their controls will be 0.",
                self.name,
                ", ".join(missing),
            )

    def _functions_from_table(self, model: Model, table: pd.DataFrame) -> None:
        times = table.index.to_numpy(dtype=float)
        for column in table.columns:
            label = str(column)
            try:
                model_index = model.find_actuator_index(label)
            except ActuatorResolutionError as exc:
                error = UnmatchedColumnError(label)
                error.__cause__ = exc
                self.column_errors.append(error)
                logger.warning("Controller '%s': %s", self.name, error)
                continue
            if model_index in self._indices:
                position = self._indices.index(model_index)
            else:
                position = self.add_actuator(model.actuators[model_index].path)
            values = table[column].to_numpy(dtype=float)
            valid = np.isfinite(values)
            if not valid.any():
                logger.warning(
                    "Controller '%s': column '%s' has no finite samples and was skipped.",
                    self.name,
                    label,
                )
                continue
            self._functions[position] = create_function(
                times[valid],
                values[valid],
                order=self.interpolation_order,
                name=model.actuators[model_index].path,
            )

    def _load_table(self) -> pd.DataFrame | None:
        if self.controls_table is not None:
            table = self.controls_table
        elif self.controls_file is not None:
            table = read_table(self.controls_file)
        else:
            return None
        if "time" in table.columns:
            table = table.set_index("time")
        return table

    def compute_controls(self, state: State) -> np.ndarray:
        if not self._labels:
            raise ControllerNotReadyError(
                f"PrescribedController '{self.name}' controls no actuators.\n"
                f"Add actuators or a controls table before evaluating."
            )
        if not self.is_connected:
            raise ControllerNotReadyError(
                f"PrescribedController '{self.name}' is not connected to a model.\n"
                f"Call model.finalize_connections() first."
            )
        controls = np.zeros(self.num_actuators)
        for i, function in enumerate(self._functions):
            if function is None:
                logger.debug("Controller '%s': %s has no function.", self.name, self._labels[i])
                continue
            controls[i] = function(state.time)
        return controls


class SynergyController(Controller):
    """Linear, non-negative expansion of synergy excitations into actuator controls.

    For actuator ``j``, ``control_j = sum_k excitation_k * synergy_vector_k[j]``.
    The excitation of channel ``k`` is the state input at
    ``input_path(k)``. No clipping is applied to either excitations or
    controls; bounding excitations is the job of whoever supplies them.
    """

    kind: ClassVar[str] = "synergy"

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self._synergy_vectors: list[np.ndarray] = []

    def _before_actuator_added(self, label: str) -> None:
        if self._synergy_vectors:
            raise DimensionMismatchError(
                f"Cannot add actuator '{label}' to '{self.name}' after synergy vectors "
                f"have been added.\nAttach all actuators first, or call set_actuators()."
            )

    def _clear_control_sources(self) -> None:
        self._synergy_vectors = []

    def _has_control_source(self, position: int) -> bool:
        return bool(self._synergy_vectors)

    def _validated(self, vector: Sequence[float] | np.ndarray) -> np.ndarray:
        weights = np.array(vector, dtype=float).reshape(-1)
        if weights.size != self.num_actuators:
            raise DimensionMismatchError(
                f"Synergy vector has {weights.size} weights but controller '{self.name}' "
                f"controls {self.num_actuators} actuators.\n"
                f"Each synergy vector needs exactly one weight per controlled actuator."
            )
        if not np.all(np.isfinite(weights)):
            raise InvalidParameterError("Synergy vector weights must be finite.")
        if np.any(weights < 0):
            raise InvalidParameterError(
                f"Synergy vector weights must be non-negative, minimum={weights.min():.6g}."
            )
        weights.setflags(write=False)
        return weights

    def add_synergy_vector(self, vector: Sequence[float] | np.ndarray) -> int:
        """Append a synergy channel and return its index."""
        self._synergy_vectors.append(self._validated(vector))
        return len(self._synergy_vectors) - 1

    def update_synergy_vector(self, index: int, vector: Sequence[float] | np.ndarray) -> None:
        self._synergy_vectors[index] = self._validated(vector)

    def get_synergy_vector(self, index: int) -> np.ndarray:
        return self._synergy_vectors[index]

    @property
    def num_synergies(self) -> int:
        return len(self._synergy_vectors)

    @property
    def synergy_vectors(self) -> np.ndarray:
        """Synergy vectors stacked as a (num_synergies, num_actuators) array."""
        if not self._synergy_vectors:
            return np.zeros((0, self.num_actuators))
        return np.vstack(self._synergy_vectors)

    @property
    def input_names(self) -> list[str]:
        return [f"{SYNERGY_INPUT_PREFIX}_{k}" for k in range(self.num_synergies)]

    def input_path(self, index: int) -> str:
        return f"{self.path}/{SYNERGY_INPUT_PREFIX}_{index}"

    def set_excitations(self, state: State, excitations: Sequence[float] | np.ndarray) -> None:
        """Write one excitation per channel into ``state.inputs``."""
        values = np.asarray(excitations, dtype=float).reshape(-1)
        if values.size != self.num_synergies:
            raise DimensionMismatchError(
                f"Got {values.size} excitations for {self.num_synergies} synergy channels "
                f"of controller '{self.name}'."
            )
        for k, value in enumerate(values):
            state.set_input(self.input_path(k), value)

    def get_excitations(self, state: State) -> np.ndarray:
        excitations = np.zeros(self.num_synergies)
        for k in range(self.num_synergies):
            path = self.input_path(k)
            if path not in state.inputs:
                logger.debug("Controller '%s': input %s not supplied, using 0.", self.name, path)
            excitations[k] = state.get_input(path)
        return excitations

    def compute_controls(self, state: State) -> np.ndarray:
        status = self.status
        if status is not ControllerStatus.READY:
            raise ControllerNotReadyError(
                f"SynergyController '{self.name}' is {status.value}.\n"
                f"It needs actuators, at least one synergy vector, and a connection "
                f"to a model before controls can be computed."
            )
        return self.get_excitations(state) @ self.synergy_vectors


AnyController = Union[PrescribedController, SynergyController]


def build_controller(config: ControllerConfig, model: Model | None = None) -> AnyController:
    """Construct the controller variant named by ``config.kind``.

    When ``model`` is given the controller is added to it; connection still
    happens in ``model.finalize_connections()``.
    """
    controller: AnyController
    if isinstance(config, PrescribedControllerConfig):
        controller = PrescribedController(
            config.name, interpolation_order=config.interpolation_order
        )
        for label in config.actuators:
            controller.add_actuator(label)
    elif isinstance(config, SynergyControllerConfig):
        controller = SynergyController(config.name)
        for label in config.actuators:
            controller.add_actuator(label)
        for vector in config.synergy_vectors:
            controller.add_synergy_vector(vector)
    else:
        raise InvalidParameterError(
            f"Unknown controller configuration {type(config).__name__}; "
            f"expected PrescribedControllerConfig or SynergyControllerConfig."
        )
    if model is not None:
        model.add_controller(controller)
    return controller
