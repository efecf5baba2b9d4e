"""Unit tests for factorization.py module."""

import warnings

import numpy as np
import pytest

from synergy_control.config import FactorizationConfig
from synergy_control.exceptions import ConvergenceWarning, InvalidParameterError
from synergy_control.factorization import (
    factorize,
    factorize_nonnegative,
    normalize_synergies,
)


def random_excitations(n_times=20, n_actuators=8, seed=3):
    """Helper generating a non-negative excitation matrix."""
    rng = np.random.default_rng(seed)
    return rng.random((n_times, n_actuators))


def exact_rank_two():
    """10 x 3 matrix that is exactly W0 @ H0 with strictly positive factors."""
    rng = np.random.default_rng(7)
    W0 = rng.uniform(0.2, 1.0, size=(10, 2))
    H0 = np.array([[1.0, 0.2, 0.6], [0.1, 1.0, 0.5]])
    return W0 @ H0


class TestFactorizeNonnegative:
    """Test the multiplicative-update iteration."""

    def test_shapes(self):
        V = random_excitations()
        result = factorize_nonnegative(V, 3, max_iterations=50, tolerance=0.0, seed=0)
        assert result.W.shape == (20, 3)
        assert result.H.shape == (3, 8)
        assert result.n_synergies == 3
        assert result.reconstruction.shape == V.shape

    def test_factors_non_negative(self):
        V = random_excitations(seed=11)
        V[:, 2] = 0.0
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", ConvergenceWarning)
            result = factorize_nonnegative(V, 4, max_iterations=300, seed=1)
        assert np.all(result.W >= 0)
        assert np.all(result.H >= 0)

    def test_error_non_increasing(self):
        V = random_excitations()
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", ConvergenceWarning)
            result = factorize_nonnegative(V, 3, max_iterations=500, tolerance=0.0, seed=2)
        steps = np.diff(result.errors)
        assert np.all(steps <= 1e-9 * result.errors[0])
        assert result.errors[-1] < result.errors[0]

    def test_recovers_exact_low_rank(self):
        V = exact_rank_two()
        result = factorize_nonnegative(V, 2, max_iterations=1000, tolerance=1e-6, seed=0)
        assert result.converged
        assert np.linalg.norm(V - result.W @ result.H) < 1e-4
        assert result.final_error < 1e-4

    def test_stops_on_tolerance(self):
        V = exact_rank_two()
        result = factorize_nonnegative(V, 2, max_iterations=100000, tolerance=1e-3, seed=0)
        assert result.converged
        assert result.iterations < 100000
        assert len(result.errors) == result.iterations + 1

    def test_seed_is_bit_reproducible(self):
        V = random_excitations()
        first = factorize_nonnegative(V, 3, max_iterations=100, tolerance=0.0, seed=42)
        second = factorize_nonnegative(V, 3, max_iterations=100, tolerance=0.0, seed=42)
        np.testing.assert_array_equal(first.W, second.W)
        np.testing.assert_array_equal(first.H, second.H)
        np.testing.assert_array_equal(first.errors, second.errors)

    def test_different_seeds_differ(self):
        V = random_excitations()
        first = factorize_nonnegative(V, 3, max_iterations=10, tolerance=0.0, seed=1)
        second = factorize_nonnegative(V, 3, max_iterations=10, tolerance=0.0, seed=2)
        assert not np.array_equal(first.W, second.W)

    def test_global_rng_untouched(self):
        np.random.seed(123)
        expected = np.random.random(3)
        np.random.seed(123)
        factorize_nonnegative(random_excitations(), 2, max_iterations=5, tolerance=0.0, seed=0)
        np.testing.assert_array_equal(np.random.random(3), expected)

    def test_input_not_modified(self):
        V = random_excitations()
        original = V.copy()
        factorize_nonnegative(V, 2, max_iterations=5, tolerance=0.0, seed=0)
        np.testing.assert_array_equal(V, original)

    def test_non_convergence_warns_and_returns_factors(self):
        V = random_excitations()
        with pytest.warns(ConvergenceWarning, match="did not converge"):
            result = factorize_nonnegative(V, 3, max_iterations=2, tolerance=0.0, seed=0)
        assert not result.converged
        assert result.iterations == 2
        assert np.all(np.isfinite(result.W))
        assert result.final_error == pytest.approx(result.errors.min())

    def test_zero_matrix(self):
        result = factorize_nonnegative(np.zeros((5, 4)), 2, seed=0)
        assert result.converged
        assert result.iterations == 0
        np.testing.assert_array_equal(result.reconstruction, np.zeros((5, 4)))

    def test_rank_not_required_below_columns(self):
        V = random_excitations(n_times=6, n_actuators=3)
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", ConvergenceWarning)
            result = factorize_nonnegative(V, 4, max_iterations=50, seed=0)
        assert result.H.shape == (4, 3)


class TestFactorizeValidation:
    """Test input validation."""

    def test_negative_entries(self):
        V = random_excitations()
        V[0, 0] = -0.1
        with pytest.raises(InvalidParameterError, match="non-negative"):
            factorize_nonnegative(V, 2)

    def test_nan_entries(self):
        V = random_excitations()
        V[1, 1] = np.nan
        with pytest.raises(InvalidParameterError, match="non-finite"):
            factorize_nonnegative(V, 2)

    def test_one_dimensional(self):
        with pytest.raises(InvalidParameterError, match="2-D"):
            factorize_nonnegative(np.ones(5), 2)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"n_synergies": 0},
            {"n_synergies": 2, "max_iterations": 0},
            {"n_synergies": 2, "tolerance": -1.0},
            {"n_synergies": 2, "denominator_floor": 0.0},
        ],
    )
    def test_bad_parameters(self, kwargs):
        with pytest.raises(InvalidParameterError):
            factorize_nonnegative(random_excitations(), **kwargs)


class TestNormalization:
    """Test synergy vector normalization."""

    def test_unit_maximum_and_product_preserved(self):
        V = random_excitations()
        result = factorize_nonnegative(V, 3, max_iterations=20, tolerance=0.0, seed=0)
        W, H = normalize_synergies(result.W, result.H)
        np.testing.assert_allclose(H.max(axis=1), 1.0)
        np.testing.assert_allclose(W @ H, result.W @ result.H, rtol=1e-12, atol=1e-14)

    def test_zero_row_left_alone(self):
        W = np.ones((4, 2))
        H = np.array([[0.0, 0.0], [2.0, 4.0]])
        W_n, H_n = normalize_synergies(W, H)
        np.testing.assert_array_equal(H_n[0], [0.0, 0.0])
        np.testing.assert_allclose(H_n[1], [0.5, 1.0])
        np.testing.assert_allclose(W_n[:, 1], 4.0)

    def test_factorize_with_config(self):
        V = exact_rank_two()
        config = FactorizationConfig(n_synergies=2, max_iterations=5000, tolerance=1e-9, seed=0)
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", ConvergenceWarning)
            result = factorize(V, config)
        np.testing.assert_allclose(result.H.max(axis=1), 1.0)
        assert np.linalg.norm(V - result.reconstruction) < 1e-2

    def test_config_validation(self):
        with pytest.raises(InvalidParameterError):
            FactorizationConfig(n_synergies=0)
        with pytest.raises(InvalidParameterError):
            FactorizationConfig(tolerance=-1.0)
