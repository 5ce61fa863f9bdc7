"""Tests for salmon_popdyn.recruitment — Ricker model with AR(1) error."""

import numpy as np
import pytest

from salmon_popdyn.recruitment import ricker_deterministic, ricker_model


class TestScalarRicker:
    def test_chilko_example(self):
        """S=1.1, a=1.8, b=1.2, error=0.3 (millions of fish)."""
        R, phi = ricker_model(S=1.1, a=1.8, b=1.2, error=0.3)
        assert R == pytest.approx(1.1 * np.exp(1.8 - 1.2 * 1.1) * np.exp(0.3))
        assert R == pytest.approx(2.3996, abs=1e-4)
        assert phi == 0.3

    def test_scalar_inputs_return_floats(self):
        R, phi = ricker_model(S=1.1, a=1.8, b=1.2, error=0.3)
        assert isinstance(R, float)
        assert isinstance(phi, float)

    def test_autoregressive_update(self):
        """phi = rho * phi_last + error exactly."""
        R, phi = ricker_model(S=1.1, a=1.8, b=1.2, error=0.3, rho=0.2, phi_last=0.7)
        assert phi == 0.2 * 0.7 + 0.3
        assert R == pytest.approx(1.1 * np.exp(1.8 - 1.2 * 1.1) * np.exp(phi))

    def test_no_memory_is_standard_ricker(self):
        """rho=0, phi_last=0 → R = S exp(a - bS) exp(error)."""
        for S, a, b, e in [(0.4, 1.0, 0.5, -0.2), (3.0, 2.2, 0.9, 0.6)]:
            R, phi = ricker_model(S, a, b, e)
            assert R == pytest.approx(S * np.exp(a - b * S) * np.exp(e))
            assert phi == e

    def test_rho_ignored_without_history(self):
        R0, phi0 = ricker_model(1.0, 1.5, 1.0, 0.1, rho=0.0)
        R1, phi1 = ricker_model(1.0, 1.5, 1.0, 0.1, rho=0.8)
        assert R0 == R1
        assert phi0 == phi1

    def test_deterministic_helper_matches_zero_error(self):
        R, _ = ricker_model(2.0, 1.5, 0.4, 0.0)
        assert R == pytest.approx(ricker_deterministic(2.0, 1.5, 0.4))


class TestVectorRicker:
    def setup_method(self):
        rng = np.random.default_rng(7)
        self.n = 10
        self.S = rng.uniform(0.8, 1.5, self.n)
        self.a = rng.normal(1.0, 1.0, self.n)
        self.b = np.ones(self.n)
        self.error = rng.normal(0.0, 0.3, self.n)
        self.phi_last = rng.normal(0.0, 0.3, self.n)

    def test_shapes(self):
        R, phi = ricker_model(self.S, self.a, self.b, self.error,
                              rho=0.2, phi_last=self.phi_last)
        assert R.shape == (self.n,)
        assert phi.shape == (self.n,)

    def test_elementwise_formula(self):
        R, phi = ricker_model(self.S, self.a, self.b, self.error,
                              rho=0.2, phi_last=self.phi_last)
        np.testing.assert_array_equal(phi, 0.2 * self.phi_last + self.error)
        np.testing.assert_allclose(
            R, self.S * np.exp(self.a - self.b * self.S) * np.exp(phi)
        )

    def test_scalar_spawners_broadcast(self):
        R, phi = ricker_model(1.0, np.array([1.0, 1.5, 2.0]), 1.0, 0.0)
        assert R.shape == (3,)
        np.testing.assert_allclose(R, np.exp(np.array([1.0, 1.5, 2.0]) - 1.0))
        np.testing.assert_array_equal(phi, 0.0)

    def test_per_cu_rho(self):
        rho = np.linspace(0.0, 0.9, self.n)
        _, phi = ricker_model(self.S, self.a, self.b, self.error,
                              rho=rho, phi_last=self.phi_last)
        np.testing.assert_array_equal(phi, rho * self.phi_last + self.error)


class TestExtinctionThreshold:
    def test_below_threshold_zeroed(self):
        S = np.array([0.0, 0.5, 0.49, 1.0])
        R, _ = ricker_model(S, 1.5, 1.0, np.full(4, 0.5), extinction_threshold=0.5)
        assert R[0] == 0.0
        assert R[1] == 0.0   # S == threshold is extinct
        assert R[2] == 0.0
        assert R[3] > 0.0

    def test_threshold_ignores_parameters(self):
        """Huge productivity and error cannot rescue an extinct CU."""
        S = np.array([0.1, 2.0])
        R, _ = ricker_model(S, np.array([20.0, 1.0]), 0.0, np.array([5.0, 0.0]),
                            extinction_threshold=0.1)
        assert R[0] == 0.0
        assert R[1] > 0.0

    def test_zero_spawners_zero_recruits(self):
        R, _ = ricker_model(0.0, 1.8, 1.2, 0.3)
        assert R == 0.0

    def test_phi_persists_through_extinction(self):
        S = np.array([0.0, 1.0])
        phi_last = np.array([0.4, 0.4])
        error = np.array([0.2, 0.2])
        R, phi = ricker_model(S, 1.0, 1.0, error, rho=0.5, phi_last=phi_last,
                              extinction_threshold=0.0)
        assert R[0] == 0.0
        np.testing.assert_array_equal(phi, 0.5 * phi_last + error)

    def test_extinct_cu_can_recover(self):
        """Carried phi still drives recruitment once S rises above the floor."""
        _, phi = ricker_model(0.0, 1.0, 1.0, 0.3)
        R, _ = ricker_model(0.5, 1.0, 1.0, 0.0, rho=1.0, phi_last=phi)
        assert R == pytest.approx(0.5 * np.exp(1.0 - 0.5) * np.exp(0.3))


class TestRecruitCap:
    def test_cap_is_hard_ceiling(self):
        S = np.linspace(0.1, 2.0, 20)
        R_free, _ = ricker_model(S, 2.0, 0.5, 0.5)
        R, _ = ricker_model(S, 2.0, 0.5, 0.5, recruit_cap=3.0)
        assert R.max() <= 3.0
        over = R_free > 3.0
        assert over.any()
        np.testing.assert_array_equal(R[over], 3.0)
        np.testing.assert_array_equal(R[~over], R_free[~over])

    def test_cap_none_is_unbounded(self):
        R, _ = ricker_model(1.0, 10.0, 0.0, 0.0, recruit_cap=None)
        assert R == pytest.approx(np.exp(10.0))

    def test_scalar_cap(self):
        R, _ = ricker_model(1.1, 1.8, 1.2, 0.3, recruit_cap=1.0)
        assert R == 1.0

    def test_extinction_applied_with_cap(self):
        S = np.array([0.0, 1.0])
        R, _ = ricker_model(S, 5.0, 0.1, 0.0, recruit_cap=2.0,
                            extinction_threshold=0.0)
        np.testing.assert_array_equal(R, [0.0, 2.0])


class TestNonFinite:
    def test_overflow_propagates(self):
        with np.errstate(over='ignore'):
            R, phi = ricker_model(1.0, 1000.0, 0.0, 0.0)
        assert np.isinf(R)
        assert phi == 0.0

    def test_nan_input_propagates(self):
        R, phi = ricker_model(1.0, np.nan, 1.0, 0.0)
        assert np.isnan(R)

    def test_nan_not_capped(self):
        R, _ = ricker_model(np.array([1.0, 1.0]), np.array([np.nan, 1.0]), 1.0, 0.0,
                            recruit_cap=0.5)
        assert np.isnan(R[0])
        assert R[1] == 0.5
