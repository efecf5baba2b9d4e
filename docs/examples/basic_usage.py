"""
Basic Usage Example for synergy_control

This script demonstrates the fundamental workflow:
1. Build a model with coordinates and actuators
2. Drive it with a prescribed controller
3. Factorize excitations into synergies
4. Re-expand synergy excitations with a synergy controller
"""

import warnings

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from synergy_control import (
    ConvergenceWarning,
    Coordinate,
    CoordinateActuator,
    Model,
    PrescribedController,
    SynergyController,
    factorize_nonnegative,
)


def create_example_model():
    """Three coordinates, each driven by one coordinate actuator."""
    model = Model("example_arm")
    for name, force in [("shoulder", 40.0), ("elbow", 25.0), ("wrist", 8.0)]:
        model.add_coordinate(Coordinate(name))
        model.add_actuator(CoordinateActuator(f"{name}_actuator", name, optimal_force=force))
    return model


def create_example_excitations(times):
    """Excitations built from two known synergies plus a little noise."""
    rng = np.random.default_rng(0)
    synergies = np.array([[1.0, 0.6, 0.1], [0.0, 0.4, 1.0]])
    activations = np.column_stack([
        0.5 + 0.5 * np.sin(2 * np.pi * times),
        0.5 + 0.5 * np.cos(2 * np.pi * times),
    ])
    excitations = activations @ synergies + 0.01 * rng.random((times.size, 3))
    return np.clip(excitations, 0.0, None)


def main():
    print("=" * 60)
    print("synergy_control Basic Usage Example")
    print("=" * 60)

    # Step 1: Build the model
    print("\n[1] Building model...")
    model = create_example_model()
    print(f"    {model}")

    # Step 2: Prescribed controls from a table
    print("\n[2] Prescribing controls from a table...")
    times = np.linspace(0.0, 1.0, 51)
    excitations = create_example_excitations(times)
    table = pd.DataFrame(
        excitations,
        index=pd.Index(times, name="time"),
        columns=[a.name for a in model.actuators],
    )
    prescribed = PrescribedController.from_table("prescribed", table, interpolation_order=3)
    model.add_controller(prescribed)
    model.finalize_connections()

    state = model.init_state(time=0.25)
    forces = model.realize(state)
    print(f"    Controls at t=0.25: {np.round(state.controls, 3)}")
    print(f"    Generalized forces: {np.round(forces, 2)}")

    # Step 3: Factorize the excitations
    print("\n[3] Factorizing excitations into 2 synergies...")
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", ConvergenceWarning)
        result = factorize_nonnegative(excitations, 2, seed=0)
    print(f"    Iterations: {result.iterations} (converged: {result.converged})")
    print(f"    Reconstruction error: {result.final_error:.4f}")

    # Step 4: Replace the prescribed controller with a synergy controller
    print("\n[4] Re-expanding synergy excitations...")
    synergy_model = create_example_model()
    controller = SynergyController("synergies")
    controller.set_actuators(synergy_model.actuators)
    for vector in result.H:
        controller.add_synergy_vector(vector)
    synergy_model.add_controller(controller)
    synergy_model.finalize_connections()

    reconstructed = np.zeros_like(excitations)
    for i, t in enumerate(times):
        state = synergy_model.init_state(t)
        controller.set_excitations(state, result.W[i])
        reconstructed[i] = synergy_model.compute_controls(state)
    rms = np.sqrt(np.mean((reconstructed - excitations) ** 2))
    print(f"    Controller status: {controller.status.value}")
    print(f"    RMS control error: {rms:.4f}")

    # Step 5: Visualize
    print("\n[5] Creating visualization...")
    fig, axes = plt.subplots(1, 2, figsize=(12, 4.5))

    ax = axes[0]
    for j, actuator in enumerate(model.actuators):
        ax.plot(times, excitations[:, j], '-', linewidth=2, label=f'{actuator.name} (data)')
        ax.plot(times, reconstructed[:, j], '--', linewidth=1.5, label=f'{actuator.name} (synergies)')
    ax.set_xlabel('Time [s]')
    ax.set_ylabel('Control')
    ax.set_title('Controls')
    ax.legend(fontsize=8)
    ax.grid(alpha=0.3)

    ax = axes[1]
    width = 0.35
    positions = np.arange(len(model.actuators))
    for k in range(result.n_synergies):
        ax.bar(positions + k * width, result.H[k], width, label=f'synergy {k}')
    ax.set_xticks(positions + width / 2)
    ax.set_xticklabels([a.name for a in model.actuators])
    ax.set_ylabel('Weight')
    ax.set_title('Synergy Vectors')
    ax.legend()
    ax.grid(alpha=0.3, axis='y')

    plt.tight_layout()
    plt.savefig('basic_usage_output.png', dpi=150, bbox_inches='tight')
    print("    Saved: basic_usage_output.png")

    print("\n" + "=" * 60)
    print("Example complete!")
    print("=" * 60)


if __name__ == "__main__":
    main()
