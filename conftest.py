"""Pytest configuration: in-repo src package on sys.path, plus shared model fixtures."""
from __future__ import annotations

import sys
from pathlib import Path

import matplotlib
import pytest

matplotlib.use("Agg")

SRC_PATH = Path(__file__).resolve().parent / "src"
if SRC_PATH.exists():
    sys.path.insert(0, str(SRC_PATH))


@pytest.fixture(autouse=True)
def quiet_progress(monkeypatch):
    """Keep tqdm progress bars out of test output."""
    monkeypatch.setenv("SYNERGY_VERBOSITY", "0")


@pytest.fixture
def two_actuator_model():
    """Model with coordinates q0, q1 and coordinate actuators 'a' (on q0) and 'b' (on q1)."""
    from synergy_control.actuators import CoordinateActuator
    from synergy_control.model import Coordinate, Model

    model = Model("two_actuators")
    model.add_coordinate(Coordinate("q0"))
    model.add_coordinate(Coordinate("q1"))
    model.add_actuator(CoordinateActuator("a", coordinate="q0", optimal_force=1.0))
    model.add_actuator(CoordinateActuator("b", coordinate="q1", optimal_force=2.0))
    model.finalize_connections()
    return model
