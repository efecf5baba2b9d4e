"""Unit tests for controllers.py module."""

import logging

import numpy as np
import pandas as pd
import pytest

from synergy_control.actuators import CoordinateActuator
from synergy_control.config import PrescribedControllerConfig, SynergyControllerConfig
from synergy_control.controllers import (
    ControllerStatus,
    PrescribedController,
    SynergyController,
    build_controller,
)
from synergy_control.exceptions import (
    ActuatorResolutionError,
    ControllerNotReadyError,
    DimensionMismatchError,
    InvalidParameterError,
    UnmatchedColumnError,
)
from synergy_control.functions import Constant, SampledFunction
from synergy_control.model import Coordinate, Model


def make_model(names=("a", "b")):
    """Helper building a model with one coordinate actuator per name."""
    model = Model("test")
    for name in names:
        model.add_coordinate(Coordinate(f"q_{name}"))
        model.add_actuator(CoordinateActuator(name, coordinate=f"q_{name}"))
    return model


class TestActuatorAttachment:
    """Test label resolution and the controller state machine."""

    def test_status_progression(self):
        model = make_model()
        controller = PrescribedController("pc")
        assert controller.status is ControllerStatus.UNCONFIGURED
        controller.add_actuator("a")
        controller.add_actuator("b")
        assert controller.status is ControllerStatus.ATTACHED
        controller.prescribe_control_for_actuator(0, Constant(1.0))
        controller.prescribe_control_for_actuator("b", Constant(2.0))
        assert controller.status is ControllerStatus.ATTACHED
        model.add_controller(controller)
        model.finalize_connections()
        assert controller.status is ControllerStatus.READY

    def test_labels_resolve_by_name_then_path(self):
        model = make_model()
        controller = PrescribedController("pc")
        controller.add_actuator("b")
        controller.add_actuator("/forceset/a")
        model.add_controller(controller)
        model.finalize_connections()
        assert controller.actuator_indices == [1, 0]
        assert controller.actuator_labels == ("/forceset/b", "/forceset/a")

    def test_actuator_object(self):
        model = make_model()
        controller = PrescribedController("pc")
        controller.add_actuator(model.get_actuator("b"))
        model.add_controller(controller)
        model.finalize_connections()
        assert controller.actuator_indices == [1]

    def test_missing_label_fails_on_connect(self):
        model = make_model()
        controller = PrescribedController("pc")
        controller.add_actuator("nope")
        model.add_controller(controller)
        with pytest.raises(ActuatorResolutionError, match="No actuator"):
            model.finalize_connections()

    def test_missing_label_fails_immediately_when_connected(self):
        model = make_model()
        controller = PrescribedController("pc")
        controller.add_actuator("a")
        model.add_controller(controller)
        model.finalize_connections()
        with pytest.raises(ActuatorResolutionError):
            controller.add_actuator("nope")
        assert controller.num_actuators == 1

    def test_ambiguous_short_name(self):
        model = Model()
        model.add_coordinate(Coordinate("q"))
        model.add_actuator(CoordinateActuator("soleus", "q"), path="/forceset/left/soleus")
        model.add_actuator(CoordinateActuator("soleus", "q"), path="/forceset/right/soleus")
        controller = SynergyController("sc")
        controller.add_actuator("soleus")
        model.add_controller(controller)
        with pytest.raises(ActuatorResolutionError, match="ambiguous"):
            model.finalize_connections()

    def test_ambiguous_name_resolved_by_path(self):
        model = Model()
        model.add_coordinate(Coordinate("q"))
        model.add_actuator(CoordinateActuator("soleus", "q"), path="/forceset/left/soleus")
        model.add_actuator(CoordinateActuator("soleus", "q"), path="/forceset/right/soleus")
        assert model.find_actuator_index("/forceset/right/soleus") == 1

    def test_duplicate_actuator(self):
        controller = PrescribedController("pc")
        controller.add_actuator("a")
        with pytest.raises(ActuatorResolutionError, match="already controlled"):
            controller.add_actuator("a")

    def test_unconfigured_raises(self):
        model = make_model()
        controller = PrescribedController("pc")
        model.add_controller(controller)
        model.finalize_connections()
        with pytest.raises(ControllerNotReadyError):
            controller.compute_controls(model.init_state())


class TestPrescribedController:
    """Test time-function control evaluation."""

    def test_compute_controls_in_attachment_order(self):
        model = make_model()
        controller = PrescribedController("pc")
        controller.add_actuator("b")
        controller.add_actuator("a")
        controller.prescribe_control_for_actuator("a", Constant(0.1))
        controller.prescribe_control_for_actuator("b", SampledFunction([0.0, 1.0], [0.0, 1.0]))
        model.add_controller(controller)
        model.finalize_connections()
        state = model.init_state(time=0.5)
        np.testing.assert_allclose(controller.compute_controls(state), [0.5, 0.1])
        np.testing.assert_allclose(model.compute_controls(state), [0.1, 0.5])

    def test_missing_function_yields_zero(self):
        model = make_model()
        controller = PrescribedController("pc")
        controller.add_actuator("a")
        controller.add_actuator("b")
        controller.prescribe_control_for_actuator("b", Constant(0.8))
        model.add_controller(controller)
        model.finalize_connections()
        assert controller.status is ControllerStatus.ATTACHED
        np.testing.assert_allclose(controller.compute_controls(model.init_state()), [0.0, 0.8])

    def test_replacing_function(self):
        controller = PrescribedController("pc")
        controller.add_actuator("a")
        controller.prescribe_control_for_actuator(0, Constant(1.0))
        replacement = Constant(2.0)
        controller.prescribe_control_for_actuator("a", replacement)
        assert controller.get_function(0) is replacement

    def test_pending_label_resolved_on_connect(self):
        model = make_model()
        controller = PrescribedController("pc")
        controller.add_actuator("a")
        controller.prescribe_control_for_actuator("/forceset/a", Constant(0.4))
        model.add_controller(controller)
        model.finalize_connections()
        assert controller.get_function("a").value == 0.4

    def test_index_out_of_range(self):
        controller = PrescribedController("pc")
        controller.add_actuator("a")
        with pytest.raises(ActuatorResolutionError, match="out of range"):
            controller.prescribe_control_for_actuator(3, Constant(1.0))

    def test_rejects_non_function(self):
        controller = PrescribedController("pc")
        controller.add_actuator("a")
        with pytest.raises(InvalidParameterError):
            controller.prescribe_control_for_actuator(0, 1.0)

    def test_bad_interpolation_order(self):
        with pytest.raises(InvalidParameterError):
            PrescribedController("pc", interpolation_order=2)

    @pytest.mark.parametrize("order", [0, 1, 3, 5])
    def test_constant_table_column(self, order):
        model = make_model(("a",))
        times = np.linspace(0.0, 1.0, 7)
        table = pd.DataFrame({"a": np.full(7, 0.35)}, index=pd.Index(times, name="time"))
        controller = PrescribedController.from_table("pc", table, interpolation_order=order)
        model.add_controller(controller)
        model.finalize_connections()
        for t in (0.0, 0.123, 0.5, 0.999, 2.0):
            state = model.init_state(time=t)
            np.testing.assert_allclose(controller.compute_controls(state), [0.35], atol=1e-12)

    def test_unmatched_column_reported(self, caplog):
        model = make_model(("a", "b"))
        times = np.array([0.0, 1.0])
        table = pd.DataFrame(
            {"time": times, "a": [0.0, 1.0], "b": [1.0, 1.0], "z": [5.0, 5.0]}
        )
        controller = PrescribedController.from_table("pc", table)
        model.add_controller(controller)
        with caplog.at_level(logging.WARNING):
            model.finalize_connections()

        assert len(controller.column_errors) == 1
        error = controller.column_errors[0]
        assert isinstance(error, UnmatchedColumnError)
        assert error.column == "z"
        assert any("'z'" in rec.message for rec in caplog.records)

        assert controller.status is ControllerStatus.READY
        state = model.init_state(time=0.5)
        np.testing.assert_allclose(controller.compute_controls(state), [0.5, 1.0])

    def test_column_without_samples_gives_zero(self, caplog):
        model = make_model(("a", "b"))
        table = pd.DataFrame(
            {"a": [0.0, 1.0], "b": [np.nan, np.nan]}, index=pd.Index([0.0, 1.0], name="time")
        )
        controller = PrescribedController.from_table("pc", table)
        model.add_controller(controller)
        with caplog.at_level(logging.WARNING):
            model.finalize_connections()

        assert controller.is_connected
        assert controller.get_function("b") is None
        assert any("no finite samples" in rec.message for rec in caplog.records)
        state = model.init_state(time=0.5)
        np.testing.assert_allclose(controller.compute_controls(state), [0.5, 0.0])

    def test_nan_rows_dropped_per_column(self):
        model = make_model(("a", "b"))
        table = pd.DataFrame(
            {"a": [0.0, np.nan, 2.0], "b": [1.0, 3.0, 1.0]},
            index=pd.Index([0.0, 1.0, 2.0], name="time"),
        )
        controller = PrescribedController.from_table("pc", table)
        model.add_controller(controller)
        model.finalize_connections()
        state = model.init_state(time=1.0)
        np.testing.assert_allclose(controller.compute_controls(state), [1.0, 3.0])

    def test_single_remaining_sample_is_constant(self):
        model = make_model(("a",))
        table = pd.DataFrame(
            {"a": [np.nan, 0.4, np.nan]}, index=pd.Index([0.0, 1.0, 2.0], name="time")
        )
        controller = PrescribedController.from_table("pc", table, interpolation_order=3)
        model.add_controller(controller)
        model.finalize_connections()
        function = controller.get_function("a")
        assert isinstance(function, Constant)
        assert function.value == 0.4
        np.testing.assert_allclose(controller.compute_controls(model.init_state(time=5.0)), [0.4])

    def test_table_column_replaces_prescribed_function(self):
        model = make_model(("a",))
        table = pd.DataFrame({"a": [0.0, 1.0]}, index=pd.Index([0.0, 1.0], name="time"))
        controller = PrescribedController.from_table("pc", table)
        controller.add_actuator("a")
        controller.prescribe_control_for_actuator("a", Constant(0.9))
        model.add_controller(controller)
        model.finalize_connections()
        state = model.init_state(time=0.5)
        np.testing.assert_allclose(controller.compute_controls(state), [0.5])

    def test_failed_connection_leaves_controller_unchanged(self):
        model = make_model(("a", "b"))
        table = pd.DataFrame(
            {"a": [0.0, 1.0], "b": [1.0, 0.0]}, index=pd.Index([1.0, 0.0], name="time")
        )
        controller = PrescribedController.from_table("pc", table)
        controller.add_actuator("a")
        model.add_controller(controller)
        with pytest.raises(InvalidParameterError, match="strictly increasing"):
            model.finalize_connections()

        assert not controller.is_connected
        assert controller.actuator_labels == ("a",)
        assert controller.get_function(0) is None
        assert controller.status is ControllerStatus.ATTACHED

    def test_controls_file(self, tmp_path):
        from synergy_control.data_io import write_storage

        model = make_model(("a", "b"))
        times = np.array([0.0, 1.0, 2.0])
        table = pd.DataFrame(
            {"/forceset/b": [0.0, 2.0, 4.0]}, index=pd.Index(times, name="time")
        )
        path = write_storage(table, tmp_path / "controls.sto")
        controller = PrescribedController("pc", controls_file=path)
        model.add_controller(controller)
        model.finalize_connections()
        assert controller.actuator_labels == ("/forceset/b",)
        state = model.init_state(time=1.5)
        np.testing.assert_allclose(controller.compute_controls(state), [3.0])

    def test_table_columns_by_path(self):
        model = make_model(("a",))
        table = pd.DataFrame({"/forceset/a": [0.2, 0.2]}, index=pd.Index([0.0, 1.0], name="time"))
        controller = PrescribedController.from_table("pc", table)
        model.add_controller(controller)
        model.finalize_connections()
        assert controller.actuator_labels == ("/forceset/a",)

    def test_reconnect_is_idempotent(self):
        model = make_model(("a", "b"))
        table = pd.DataFrame({"a": [0.0, 1.0], "z": [0.0, 0.0]}, index=pd.Index([0.0, 1.0], name="time"))
        controller = PrescribedController.from_table("pc", table)
        model.add_controller(controller)
        model.finalize_connections()
        model.finalize_connections()
        assert controller.num_actuators == 1
        assert len(controller.column_errors) == 1


class TestSynergyController:
    """Test synergy expansion."""

    def make_ready(self, vectors, names=("a", "b")):
        model = make_model(names)
        controller = SynergyController("sc")
        for name in names:
            controller.add_actuator(name)
        for vector in vectors:
            controller.add_synergy_vector(vector)
        model.add_controller(controller)
        model.finalize_connections()
        return model, controller

    def test_unclamped_linear_expansion(self):
        model, controller = self.make_ready([[0.3, 0.7]])
        state = model.init_state()
        controller.set_excitations(state, [2.0])
        np.testing.assert_allclose(controller.compute_controls(state), [0.6, 1.4])

    def test_unit_excitation_reproduces_vector(self):
        vectors = [[0.1, 0.0, 0.5], [0.9, 0.4, 0.0], [0.2, 0.2, 0.2]]
        model, controller = self.make_ready(vectors, names=("a", "b", "c"))
        for k in range(3):
            state = model.init_state()
            excitations = np.zeros(3)
            excitations[k] = 1.0
            controller.set_excitations(state, excitations)
            np.testing.assert_allclose(controller.compute_controls(state), vectors[k])

    def test_sum_over_channels(self):
        model, controller = self.make_ready([[1.0, 0.0], [0.5, 0.5]])
        state = model.init_state()
        state.set_input(controller.input_path(0), 0.2)
        state.set_input(controller.input_path(1), 0.4)
        np.testing.assert_allclose(controller.compute_controls(state), [0.4, 0.2])

    def test_missing_input_reads_zero(self):
        model, controller = self.make_ready([[1.0, 1.0]])
        np.testing.assert_allclose(controller.compute_controls(model.init_state()), [0.0, 0.0])

    def test_input_names_and_paths(self):
        _, controller = self.make_ready([[1.0, 0.0], [0.0, 1.0]])
        assert controller.input_names == ["synergy_excitation_0", "synergy_excitation_1"]
        assert controller.input_path(1) == "/controllerset/sc/synergy_excitation_1"

    def test_dimension_mismatch(self):
        controller = SynergyController("sc")
        controller.add_actuator("a")
        controller.add_actuator("b")
        with pytest.raises(DimensionMismatchError, match="2 actuators"):
            controller.add_synergy_vector([1.0, 0.0, 0.5])

    def test_negative_weights_rejected(self):
        controller = SynergyController("sc")
        controller.add_actuator("a")
        with pytest.raises(InvalidParameterError, match="non-negative"):
            controller.add_synergy_vector([-0.1])

    def test_vectors_are_immutable(self):
        _, controller = self.make_ready([[0.3, 0.7]])
        with pytest.raises(ValueError):
            controller.get_synergy_vector(0)[0] = 5.0
        controller.update_synergy_vector(0, [0.5, 0.5])
        np.testing.assert_allclose(controller.synergy_vectors, [[0.5, 0.5]])

    def test_source_array_not_shared(self):
        source = np.array([0.3, 0.7])
        _, controller = self.make_ready([source])
        source[0] = 9.0
        assert controller.get_synergy_vector(0)[0] == 0.3

    def test_cannot_add_actuator_after_vectors(self):
        controller = SynergyController("sc")
        controller.add_actuator("a")
        controller.add_synergy_vector([1.0])
        with pytest.raises(DimensionMismatchError):
            controller.add_actuator("b")

    def test_not_ready_without_vectors(self):
        model = make_model()
        controller = SynergyController("sc")
        controller.add_actuator("a")
        model.add_controller(controller)
        model.finalize_connections()
        assert controller.status is ControllerStatus.ATTACHED
        with pytest.raises(ControllerNotReadyError):
            controller.compute_controls(model.init_state())

    def test_not_ready_before_connection(self):
        controller = SynergyController("sc")
        controller.add_actuator("a")
        controller.add_synergy_vector([1.0])
        with pytest.raises(ControllerNotReadyError):
            controller.compute_controls(make_model().init_state())

    def test_set_actuators_clears_vectors(self):
        controller = SynergyController("sc")
        controller.add_actuator("a")
        controller.add_synergy_vector([1.0])
        controller.set_actuators(["a", "b"])
        assert controller.num_synergies == 0
        assert controller.num_actuators == 2


class TestModelControls:
    """Test accumulation of several controllers."""

    def test_controllers_add(self):
        model = make_model()
        prescribed = PrescribedController("pc")
        prescribed.add_actuator("a")
        prescribed.prescribe_control_for_actuator(0, Constant(0.25))
        synergy = SynergyController("sc")
        synergy.add_actuator("a")
        synergy.add_actuator("b")
        synergy.add_synergy_vector([1.0, 0.5])
        model.add_controller(prescribed)
        model.add_controller(synergy)
        model.finalize_connections()

        state = model.init_state()
        synergy.set_excitations(state, [1.0])
        np.testing.assert_allclose(model.compute_controls(state), [1.25, 0.5])
        np.testing.assert_allclose(model.compute_forces(state), [1.25, 0.5])


class TestBuildController:
    """Test dispatch over controller configurations."""

    def test_prescribed(self):
        model = make_model()
        controller = build_controller(
            PrescribedControllerConfig("pc", actuators=("a",), interpolation_order=3), model
        )
        assert isinstance(controller, PrescribedController)
        assert controller.interpolation_order == 3
        assert controller.path == "/controllerset/pc"

    def test_synergy(self):
        model = make_model()
        controller = build_controller(
            SynergyControllerConfig("sc", actuators=("a", "b"), synergy_vectors=((0.3, 0.7),)),
            model,
        )
        model.finalize_connections()
        state = model.init_state()
        controller.set_excitations(state, [2.0])
        np.testing.assert_allclose(controller.compute_controls(state), [0.6, 1.4])

    def test_config_validation(self):
        with pytest.raises(InvalidParameterError):
            PrescribedControllerConfig("pc", interpolation_order=4)

    def test_unknown_config(self):
        with pytest.raises(InvalidParameterError):
            build_controller(object())
