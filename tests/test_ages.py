"""Tests for salmon_popdyn.ages — age proportions and return distribution."""

import numpy as np
import pytest

from salmon_popdyn.ages import distribute_recruits, ppn_age_error

MEAN_PPN = [0.2, 0.4, 0.3, 0.1]


class TestPpnAgeError:
    def test_shape(self):
        p = ppn_age_error(MEAN_PPN, omega=0.8, n_years=7, rng=np.random.default_rng(1))
        assert p.shape == (7, 4)

    def test_rows_sum_to_one(self):
        p = ppn_age_error(MEAN_PPN, omega=0.8, n_years=500, rng=np.random.default_rng(2))
        np.testing.assert_allclose(p.sum(axis=1), 1.0, atol=1e-9)

    def test_non_negative(self):
        p = ppn_age_error([0.0, 0.5, 0.5, 0.0], omega=2.0, n_years=500,
                          rng=np.random.default_rng(3))
        assert np.all(p >= 0.0)
        # Ages with zero mean stay at zero
        np.testing.assert_array_equal(p[:, 0], 0.0)
        np.testing.assert_array_equal(p[:, 3], 0.0)

    def test_omega_zero_reproduces_means(self):
        p = ppn_age_error(MEAN_PPN, omega=0.0, n_years=1, rng=np.random.default_rng(4))
        np.testing.assert_allclose(p, [MEAN_PPN], rtol=1e-12)

    def test_omega_zero_every_year(self):
        p = ppn_age_error(MEAN_PPN, omega=0.0, n_years=25, rng=np.random.default_rng(5))
        np.testing.assert_allclose(p, np.tile(MEAN_PPN, (25, 1)), rtol=1e-12)

    def test_omega_zero_normalizes_means(self):
        p = ppn_age_error([2.0, 4.0, 3.0, 1.0], omega=0.0, n_years=3,
                          rng=np.random.default_rng(6))
        np.testing.assert_allclose(p, np.tile(MEAN_PPN, (3, 1)), rtol=1e-12)

    def test_nan_means_coerced_to_zero(self):
        p = ppn_age_error([0.5, np.nan, 0.5], omega=0.5, n_years=10,
                          rng=np.random.default_rng(7))
        assert not np.any(np.isnan(p))
        np.testing.assert_array_equal(p[:, 1], 0.0)
        np.testing.assert_allclose(p.sum(axis=1), 1.0, atol=1e-9)

    def test_input_not_modified(self):
        ppn = np.array([0.5, np.nan, 0.5])
        ppn_age_error(ppn, omega=0.5, n_years=2, rng=np.random.default_rng(8))
        assert np.isnan(ppn[1])

    def test_all_zero_means_give_nan(self):
        with np.errstate(invalid='ignore'):
            p = ppn_age_error([0.0, 0.0, 0.0], omega=0.5, n_years=2,
                              rng=np.random.default_rng(9))
        assert np.all(np.isnan(p))

    def test_dispersion_increases_with_omega(self):
        lo = ppn_age_error(MEAN_PPN, omega=0.1, n_years=2000, rng=np.random.default_rng(10))
        hi = ppn_age_error(MEAN_PPN, omega=1.5, n_years=2000, rng=np.random.default_rng(10))
        assert hi[:, 1].std() > lo[:, 1].std()

    def test_mean_near_input_for_small_omega(self):
        p = ppn_age_error(MEAN_PPN, omega=0.1, n_years=5000, rng=np.random.default_rng(11))
        np.testing.assert_allclose(p.mean(axis=0), MEAN_PPN, atol=0.01)

    def test_reproducible(self):
        p1 = ppn_age_error(MEAN_PPN, 0.8, 5, rng=np.random.default_rng(42))
        p2 = ppn_age_error(MEAN_PPN, 0.8, 5, rng=np.random.default_rng(42))
        np.testing.assert_array_equal(p1, p2)

    def test_bounded_deviates(self):
        """Trimmed uniforms keep exp(omega * eps) finite and positive."""
        p = ppn_age_error(MEAN_PPN, omega=10.0, n_years=200, rng=np.random.default_rng(12))
        assert np.all(np.isfinite(p))


class TestDistributeRecruits:
    def test_returns_by_age(self):
        returns = np.zeros((6, 2))
        distribute_recruits(
            recruits=np.array([100.0, 10.0]),
            proportions=np.array([[0.5, 0.5], [1.0, 0.0]]),
            ages=[3, 4],
            brood_year=0,
            returns=returns,
        )
        np.testing.assert_allclose(returns[3], [50.0, 10.0])
        np.testing.assert_allclose(returns[4], [50.0, 0.0])
        assert returns[[0, 1, 2, 5]].sum() == 0.0

    def test_accumulates(self):
        returns = np.full((5, 1), 7.0)
        distribute_recruits(np.array([10.0]), np.array([[1.0]]), [2], 1, returns)
        assert returns[3, 0] == 17.0

    def test_beyond_horizon_dropped(self):
        returns = np.zeros((5, 1))
        distribute_recruits(np.array([100.0]), np.array([[0.5, 0.5]]), [3, 4], 1, returns)
        assert returns[4, 0] == 50.0
        assert returns.sum() == 50.0

    def test_negative_brood_year(self):
        returns = np.zeros((3, 1))
        distribute_recruits(np.array([100.0]), np.array([[0.25, 0.75]]), [1, 2], -2, returns)
        # age 1 → year -1 (dropped), age 2 → year 0
        assert returns[0, 0] == 75.0
        assert returns.sum() == 75.0

    def test_conserves_fish_within_horizon(self):
        rng = np.random.default_rng(3)
        p = ppn_age_error(MEAN_PPN, 0.8, 3, rng=rng)
        recruits = np.array([1000.0, 200.0, 30.0])
        returns = np.zeros((20, 3))
        distribute_recruits(recruits, p, [3, 4, 5, 6], 0, returns)
        np.testing.assert_allclose(returns.sum(axis=0), recruits)
