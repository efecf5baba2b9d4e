"""Synthetic gait model and muscle excitations.

This module provides a small bilateral lower-limb model and excitation data
generated from known synergies:
- Hip, knee and ankle coordinates on each side, plus a locked lumbar joint
- Eight muscles per leg, each a PathActuator with constant moment arms
- Four gait synergies (weight acceptance, propulsion, swing, late swing)

These are useful for:
- Testing the factorization and synergy controllers end to end
- Demonstrating the pipeline without measured data

Example:
    >>> from synergy_control.synthetic_data import make_gait_model, make_gait_excitations
    >>>
    >>> model = make_gait_model()
    >>> excitations = make_gait_excitations(model, seed=0)
    >>> excitations.shape
    (101, 16)

Note: These are idealized test cases, not recorded electromyography.
"""

from __future__ import annotations

from typing import Dict

import numpy as np
import pandas as pd

from .actuators import PathActuator
from .model import Coordinate, Model, MomentArmPath

SIDES = ("r", "l")

MUSCLES = ("glmax", "psoas", "hamstrings", "recfem", "vasti", "gasmed", "soleus", "tibant")

# Moment arms [m] about hip flexion, knee extension and ankle dorsiflexion.
MOMENT_ARMS: Dict[str, Dict[str, float]] = {
    "glmax": {"hip_flexion": -0.06},
    "psoas": {"hip_flexion": 0.04},
    "hamstrings": {"hip_flexion": -0.07, "knee_angle": -0.03},
    "recfem": {"hip_flexion": 0.04, "knee_angle": 0.05},
    "vasti": {"knee_angle": 0.05},
    "gasmed": {"knee_angle": -0.02, "ankle_angle": -0.05},
    "soleus": {"ankle_angle": -0.05},
    "tibant": {"ankle_angle": 0.04},
}

MAX_ISOMETRIC_FORCE: Dict[str, float] = {
    "glmax": 1500.0,
    "psoas": 1100.0,
    "hamstrings": 2500.0,
    "recfem": 1200.0,
    "vasti": 5000.0,
    "gasmed": 1600.0,
    "soleus": 3500.0,
    "tibant": 1000.0,
}

# Rows: synergies; columns follow MUSCLES.
GAIT_SYNERGIES = np.array(
    [
        [0.9, 0.0, 0.3, 0.4, 1.0, 0.0, 0.1, 0.2],  # weight acceptance
        [0.1, 0.0, 0.0, 0.0, 0.1, 1.0, 0.9, 0.0],  # propulsion
        [0.0, 1.0, 0.0, 0.6, 0.0, 0.0, 0.0, 0.8],  # swing
        [0.2, 0.0, 1.0, 0.0, 0.0, 0.1, 0.0, 0.7],  # late swing
    ]
)

# Peak phase and width of each synergy's activation over the gait cycle.
ACTIVATION_PEAKS = np.array([0.08, 0.45, 0.70, 0.92])
ACTIVATION_WIDTHS = np.array([0.06, 0.08, 0.07, 0.05])


def make_gait_model(name: str = "synthetic_gait") -> Model:
    model = Model(name)
    for side in SIDES:
        for coord in ("hip_flexion", "knee_angle", "ankle_angle"):
            model.add_coordinate(Coordinate(f"{coord}_{side}"))
    model.add_coordinate(Coordinate("lumbar_extension", locked=True))

    for side in SIDES:
        for muscle in MUSCLES:
            name_side = f"{muscle}_{side}"
            arms = {f"{coord}_{side}": arm for coord, arm in MOMENT_ARMS[muscle].items()}
            model.add_path(MomentArmPath(name_side, arms))
            model.add_actuator(
                PathActuator(name_side, name_side, optimal_force=MAX_ISOMETRIC_FORCE[muscle])
            )
    return model


def gait_activations(phase: np.ndarray, n_synergies: int = 4) -> np.ndarray:
    """Periodic Gaussian activation profiles, shape (len(phase), n_synergies)."""
    peaks = ACTIVATION_PEAKS[:n_synergies]
    widths = ACTIVATION_WIDTHS[:n_synergies]
    distance = np.abs(phase[:, np.newaxis] - peaks[np.newaxis, :])
    distance = np.minimum(distance, 1.0 - distance)
    return np.exp(-0.5 * np.square(distance / widths))


def make_gait_excitations(
    model: Model | None = None,
    n_times: int = 101,
    n_synergies: int = 4,
    seed: int | None = 0,
    noise: float = 0.02,
    duration: float = 1.0,
) -> pd.DataFrame:
    """Excitations of every muscle of ``model`` over one gait cycle.

    The left leg lags the right by half a cycle. Gaussian noise of standard
    deviation ``noise`` is added and the result is clipped to [0, 1].
    Columns are actuator paths; the index is time.
    """
    if not 1 <= n_synergies <= GAIT_SYNERGIES.shape[0]:
        raise ValueError(
            f"n_synergies must lie in [1, {GAIT_SYNERGIES.shape[0]}], got {n_synergies}."
        )
    model = model or make_gait_model()
    rng = np.random.default_rng(seed)
    time = np.linspace(0.0, duration, n_times)
    phase = time / duration

    columns: dict[str, np.ndarray] = {}
    for side, shift in zip(SIDES, (0.0, 0.5)):
        activations = gait_activations((phase + shift) % 1.0, n_synergies)
        excitations = activations @ GAIT_SYNERGIES[:n_synergies]
        for j, muscle in enumerate(MUSCLES):
            columns[f"{muscle}_{side}"] = excitations[:, j]

    data: dict[str, np.ndarray] = {}
    for actuator in model.actuators:
        if actuator.name not in columns:
            continue
        clean = columns[actuator.name]
        noisy = clean + noise * rng.standard_normal(clean.size)
        data[actuator.path] = np.clip(noisy, 0.0, 1.0)
    return pd.DataFrame(data, index=pd.Index(time, name="time"))
