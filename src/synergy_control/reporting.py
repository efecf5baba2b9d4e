"""Reporting utilities for synergy extraction."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

import numpy as np
from tabulate import tabulate

from .factorization import FactorizationResult


@dataclass(frozen=True)
class SynergyMetrics:
    name: str
    n_synergies: int
    vaf: float
    actuator_vaf: dict[str, float]
    rms_error: float
    relative_error: float
    iterations: int
    converged: bool

    @property
    def min_actuator_vaf(self) -> float:
        return min(self.actuator_vaf.values(), default=float("nan"))


def variance_accounted_for(V: np.ndarray, reconstruction: np.ndarray, axis: int | None = None):
    """Uncentered VAF, ``1 - SSE / sum(V**2)``; all-zero data counts as fully explained."""
    sse = np.sum(np.square(V - reconstruction), axis=axis)
    total = np.sum(np.square(V), axis=axis)
    safe_total = np.where(total > 0, total, 1.0)
    return np.where(total > 0, 1.0 - sse / safe_total, np.where(sse > 0, 0.0, 1.0))


def compute_synergy_metrics(
    V,
    result: FactorizationResult,
    labels: Sequence[str],
    name: str = "synergies",
) -> SynergyMetrics:
    V = np.asarray(V, dtype=float)
    reconstruction = result.reconstruction
    residual = V - reconstruction
    per_actuator = variance_accounted_for(V, reconstruction, axis=0)
    norm_v = float(np.linalg.norm(V))
    return SynergyMetrics(
        name=name,
        n_synergies=result.n_synergies,
        vaf=float(variance_accounted_for(V, reconstruction)),
        actuator_vaf={label: float(v) for label, v in zip(labels, per_actuator)},
        rms_error=float(np.sqrt(np.mean(np.square(residual)))),
        relative_error=float(np.linalg.norm(residual) / norm_v) if norm_v > 0 else 0.0,
        iterations=result.iterations,
        converged=result.converged,
    )


def summarize_synergy_metrics(metrics: Iterable[SynergyMetrics]) -> str:
    rows: list[tuple] = []
    metrics_list = list(metrics)
    for metric in metrics_list:
        rows.append(
            (
                metric.name,
                metric.n_synergies,
                f"{metric.vaf * 100.0:.2f}",
                f"{metric.min_actuator_vaf * 100.0:.2f}",
                f"{metric.rms_error:.4f}",
                metric.iterations,
                "yes" if metric.converged else "no",
            )
        )
    table = tabulate(
        rows,
        headers=["Group", "K", "VAF [%]", "Min actuator VAF [%]", "RMS", "Iterations", "Converged"],
        tablefmt="github",
    )
    if not metrics_list:
        return table
    mean_vaf = np.mean([m.vaf for m in metrics_list]) * 100.0
    return table + "\n" + f"Overall mean VAF: {mean_vaf:.2f}%"


def summarize_actuator_vaf(metric: SynergyMetrics) -> str:
    rows = [(label, f"{vaf * 100.0:.2f}") for label, vaf in metric.actuator_vaf.items()]
    return tabulate(rows, headers=["Actuator", "VAF [%]"], tablefmt="github")
