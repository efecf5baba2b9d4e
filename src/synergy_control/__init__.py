"""Control allocation for musculoskeletal models: actuators, controllers and synergies.

Abstract control signals become generalized forces through a small pipeline:
controllers produce one control value per actuator, and each actuator scales
its control by an optimal force and applies the result to the coordinates it
drives. Muscle synergies reduce the number of independent controls: a
non-negative matrix factorization of recorded excitations yields a few
synergy vectors, and a synergy controller re-expands a few excitations
through those vectors at simulation time.

Main Components:
    - Model, State: Component tables and the per-evaluation context
    - CoordinateActuator, PathActuator: Control-to-force conversion
    - PrescribedController: One function of time per actuator
    - SynergyController: Excitations times non-negative synergy vectors
    - factorize_nonnegative: Multiplicative-update NMF
    - SynergyAnalysis: Extraction, controller construction and reporting

Quick Start:
    >>> from synergy_control import SynergyAnalysis, FactorizationConfig
    >>> from synergy_control.synthetic_data import make_gait_model, make_gait_excitations
    >>>
    >>> model = make_gait_model()
    >>> excitations = make_gait_excitations(model, seed=0)
    >>> artifacts = SynergyAnalysis(model, FactorizationConfig(n_synergies=4, seed=0)).run(excitations)
    >>> print(artifacts.tables)
"""

from .actuators import Actuator, CoordinateActuator, PathActuator, build_actuator
from .analysis import SynergyAnalysis, generate_controls_table, split_by_side
from .config import (
    ActuatorConfig,
    FactorizationConfig,
    ModelConfig,
    PrescribedControllerConfig,
    SynergyControllerConfig,
)
from .controllers import (
    Controller,
    ControllerStatus,
    PrescribedController,
    SynergyController,
    build_controller,
)
from .exceptions import (
    ActuatorResolutionError,
    ControllerNotReadyError,
    ConvergenceWarning,
    DimensionMismatchError,
    InvalidParameterError,
    UnmatchedColumnError,
    UnresolvedReferenceError,
)
from .factorization import FactorizationResult, factorize, factorize_nonnegative
from .functions import Constant, SampledFunction, create_function
from .model import Coordinate, Model, MomentArmPath, State

__all__ = [
    "Actuator",
    "CoordinateActuator",
    "PathActuator",
    "build_actuator",
    "SynergyAnalysis",
    "generate_controls_table",
    "split_by_side",
    "ActuatorConfig",
    "FactorizationConfig",
    "ModelConfig",
    "PrescribedControllerConfig",
    "SynergyControllerConfig",
    "Controller",
    "ControllerStatus",
    "PrescribedController",
    "SynergyController",
    "build_controller",
    "ActuatorResolutionError",
    "ControllerNotReadyError",
    "ConvergenceWarning",
    "DimensionMismatchError",
    "InvalidParameterError",
    "UnmatchedColumnError",
    "UnresolvedReferenceError",
    "FactorizationResult",
    "factorize",
    "factorize_nonnegative",
    "Constant",
    "SampledFunction",
    "create_function",
    "Coordinate",
    "Model",
    "MomentArmPath",
    "State",
]
