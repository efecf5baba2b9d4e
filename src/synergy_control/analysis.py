"""Analysis routines orchestrating synergy extraction and control re-expansion."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from tqdm import tqdm

from .actuators import CoordinateActuator
from .config import FactorizationConfig, _get_verbosity
from .controllers import SynergyController
from .data_io import write_storage
from .factorization import FactorizationResult, factorize
from .model import Coordinate, Model
from .reporting import SynergyMetrics, compute_synergy_metrics, summarize_synergy_metrics
from .synthetic_data import make_gait_excitations, make_gait_model

logger = logging.getLogger(__name__)

DEFAULT_SIDES = {"left_leg": "_l", "right_leg": "_r"}


def split_by_side(
    labels: Sequence[str],
    suffixes: Mapping[str, str] | None = None,
) -> Dict[str, List[str]]:
    """Group actuator labels by the suffix of their short name.

    Labels whose name ends with none of the suffixes are left out.
    """
    suffixes = dict(suffixes or DEFAULT_SIDES)
    groups: Dict[str, List[str]] = {group: [] for group in suffixes}
    for label in labels:
        short = label.rsplit("/", 1)[-1]
        for group, suffix in suffixes.items():
            if short.endswith(suffix):
                groups[group].append(label)
                break
        else:
            logger.debug("Label '%s' matches no side suffix; skipped.", label)
    return {group: members for group, members in groups.items() if members}


def model_from_table(table: pd.DataFrame, name: str = "excitation_model") -> Model:
    """A model with one CoordinateActuator, on its own coordinate, per table column.

    Column labels that start with ``/`` are used as the actuator's absolute
    path; their last segment becomes the actuator name.
    """
    model = Model(name)
    for column in table.columns:
        label = str(column)
        short = label.rsplit("/", 1)[-1]
        model.add_coordinate(Coordinate(f"{short}_coordinate"))
        actuator = CoordinateActuator(short, coordinate=f"{short}_coordinate")
        model.add_actuator(actuator, path=label if label.startswith("/") else None)
    model.finalize_connections()
    return model


def synergy_controller_from_factorization(
    name: str,
    labels: Sequence[str],
    result: FactorizationResult,
) -> SynergyController:
    """A SynergyController over ``labels`` with one channel per row of ``result.H``."""
    controller = SynergyController(name)
    for label in labels:
        controller.add_actuator(label)
    for k in range(result.n_synergies):
        controller.add_synergy_vector(result.H[k])
    return controller


def generate_controls_table(
    model: Model,
    times: Sequence[float] | np.ndarray,
    inputs: Mapping[str, np.ndarray] | None = None,
) -> pd.DataFrame:
    """Evaluate the model's controllers at each time.

    ``inputs`` maps an input path (e.g. a synergy excitation) to one value
    per time. Returns a time-indexed table with one column per actuator path.
    """
    times = np.asarray(times, dtype=float)
    inputs = {path: np.asarray(values, dtype=float) for path, values in (inputs or {}).items()}
    for path, values in inputs.items():
        if values.shape != times.shape:
            raise ValueError(
                f"Input '{path}' has {values.size} values for {times.size} times."
            )
    rows = np.zeros((times.size, model.num_actuators))
    for i, t in enumerate(times):
        state = model.init_state(t)
        for path, values in inputs.items():
            state.set_input(path, values[i])
        rows[i] = model.compute_controls(state)
    return pd.DataFrame(rows, index=pd.Index(times, name="time"), columns=model.actuator_paths)


@dataclass(slots=True)
class AnalysisArtifacts:
    config: FactorizationConfig
    groups: Dict[str, List[str]]
    results: Dict[str, FactorizationResult]
    metrics: Dict[str, SynergyMetrics]
    controllers: Dict[str, SynergyController]
    controls: pd.DataFrame
    controls_error: float
    tables: str
    plot_paths: List[Path]


class SynergyAnalysis:
    """Extract synergies per actuator group and install matching controllers on a model."""

    def __init__(self, model: Model, config: FactorizationConfig | None = None) -> None:
        self.model = model
        self.config = config or FactorizationConfig()

    def _plot_synergies(self, group: str, labels: Sequence[str], result: FactorizationResult, out_path: Path) -> None:
        short = [label.rsplit("/", 1)[-1] for label in labels]
        n_syn = result.n_synergies
        fig, axes = plt.subplots(n_syn, 1, figsize=(7.5, 1.8 * n_syn + 1.0), sharex=True, squeeze=False)
        for k, ax in enumerate(axes[:, 0]):
            ax.bar(np.arange(len(short)), result.H[k], color="tab:blue")
            ax.set_ylabel(f"S{k}")
            ax.grid(True, axis="y", alpha=0.3)
        axes[-1, 0].set_xticks(np.arange(len(short)))
        axes[-1, 0].set_xticklabels(short, rotation=45, ha="right")
        fig.suptitle(f"Synergy vectors: {group}")
        fig.tight_layout()
        fig.savefig(out_path)
        plt.close(fig)

    def _plot_activations(
        self,
        group: str,
        times: np.ndarray,
        result: FactorizationResult,
        out_path: Path,
    ) -> None:
        plt.figure(figsize=(7.5, 5.0))
        for k in range(result.n_synergies):
            plt.plot(times, result.W[:, k], linewidth=2.0, label=f"synergy_excitation_{k}")
        plt.xlabel("Time [s]")
        plt.ylabel("Excitation")
        plt.title(f"Synergy excitations: {group}")
        plt.grid(True, alpha=0.3)
        plt.legend()
        plt.tight_layout()
        plt.savefig(out_path)
        plt.close()

    def _plot_reconstruction(
        self,
        table: pd.DataFrame,
        controls: pd.DataFrame,
        labels: Sequence[str],
        out_path: Path,
    ) -> None:
        n_cols = 4
        n_rows = int(np.ceil(len(labels) / n_cols))
        fig, axes = plt.subplots(n_rows, n_cols, figsize=(12.0, 2.4 * n_rows), sharex=True, squeeze=False)
        for ax, label in zip(axes.flat, labels):
            ax.plot(table.index, table[label], "k-", linewidth=1.5, label="Data")
            ax.plot(controls.index, controls[label], "r--", linewidth=1.5, label="Synergies")
            ax.set_title(label.rsplit("/", 1)[-1])
            ax.grid(True, alpha=0.3)
        for ax in list(axes.flat)[len(labels):]:
            ax.set_visible(False)
        axes[0, 0].legend()
        fig.tight_layout()
        fig.savefig(out_path)
        plt.close(fig)

    def extract(
        self,
        table: pd.DataFrame,
        groups: Mapping[str, Sequence[str]],
    ) -> tuple[Dict[str, FactorizationResult], Dict[str, SynergyMetrics], Dict[str, SynergyController]]:
        results: Dict[str, FactorizationResult] = {}
        metrics: Dict[str, SynergyMetrics] = {}
        controllers: Dict[str, SynergyController] = {}

        verbosity = _get_verbosity()
        group_iter = tqdm(
            groups.items(),
            total=len(groups),
            desc="Extracting synergies",
            disable=verbosity == 0,
            leave=False,
        )
        for group, labels in group_iter:
            labels = list(labels)
            missing = [label for label in labels if label not in table.columns]
            if missing:
                raise ValueError(
                    f"Group '{group}' names columns absent from the excitation table: "
                    f"{', '.join(missing)}"
                )
            V = table[labels].to_numpy(dtype=float)
            result = factorize(V, self.config)
            results[group] = result
            metrics[group] = compute_synergy_metrics(V, result, labels, name=group)
            controller = synergy_controller_from_factorization(
                f"synergy_controller_{group}", labels, result
            )
            for label in labels:
                self.model.find_actuator_index(label)
            controllers[group] = controller
            logger.info(
                "Group '%s': %d synergies, VAF %.2f%% after %d iterations.",
                group,
                result.n_synergies,
                metrics[group].vaf * 100.0,
                result.iterations,
            )

        # Nothing is installed until every group has factorized and resolved.
        for controller in controllers.values():
            if any(existing.name == controller.name for existing in self.model.controllers):
                logger.info("Replacing controller '%s' on model '%s'.", controller.name, self.model.name)
                self.model.remove_controller(controller.name)
            self.model.add_controller(controller)
            controller.connect_to_model(self.model)
        return results, metrics, controllers

    def run(
        self,
        table: pd.DataFrame,
        output_dir: Path | None = None,
        groups: Optional[Mapping[str, Sequence[str]]] = None,
    ) -> AnalysisArtifacts:
        """Factorize, install controllers, re-expand the excitations and report.

        The activations found by the factorization are fed back as synergy
        excitations, so the controls table reproduces the data up to the
        factorization error.
        """
        groups = {
            group: list(labels)
            for group, labels in (groups or split_by_side(list(table.columns))).items()
        }
        if not groups:
            raise ValueError(
                "No actuator groups to factorize.\n"
                "Pass groups explicitly or use column labels ending in '_l' / '_r'."
            )
        results, metrics, controllers = self.extract(table, groups)

        times = table.index.to_numpy(dtype=float)
        inputs: Dict[str, np.ndarray] = {}
        for group, controller in controllers.items():
            for k in range(controller.num_synergies):
                inputs[controller.input_path(k)] = results[group].W[:, k]
        controls = generate_controls_table(self.model, times, inputs)

        used = [label for labels in groups.values() for label in labels]
        controls_error = float(
            np.sqrt(np.mean(np.square(controls[used].to_numpy() - table[used].to_numpy())))
        )

        plot_paths: List[Path] = []
        tables = summarize_synergy_metrics(metrics.values())
        if output_dir is not None:
            output_dir = Path(output_dir)
            output_dir.mkdir(parents=True, exist_ok=True)
            for group, labels in groups.items():
                synergy_path = output_dir / f"{group}_synergies.png"
                activation_path = output_dir / f"{group}_excitations.png"
                reconstruction_path = output_dir / f"{group}_reconstruction.png"
                self._plot_synergies(group, labels, results[group], synergy_path)
                self._plot_activations(group, times, results[group], activation_path)
                self._plot_reconstruction(table, controls, labels, reconstruction_path)
                plot_paths.extend([synergy_path, activation_path, reconstruction_path])
            write_storage(controls, output_dir / "synergy_controls.sto", name="synergy_controls")
            (output_dir / "synergy_metrics.md").write_text(tables + "\n", encoding="utf-8")

        return AnalysisArtifacts(
            config=self.config,
            groups=groups,
            results=results,
            metrics=metrics,
            controllers=controllers,
            controls=controls,
            controls_error=controls_error,
            tables=tables,
            plot_paths=plot_paths,
        )


def run_synthetic_pipeline(
    output_dir: Path | None = None,
    config: FactorizationConfig | None = None,
    seed: int | None = 0,
) -> AnalysisArtifacts:
    model = make_gait_model()
    table = make_gait_excitations(model, seed=seed)
    config = config or FactorizationConfig(n_synergies=4, seed=seed)
    return SynergyAnalysis(model, config).run(table, output_dir=output_dir)
