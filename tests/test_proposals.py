import numpy as np
import pytest
import particle_mcmc as M


@pytest.mark.parametrize("theta", [
    [4.5, 4.5, 4.5, 4.5],
    [0.0, 0.0, 9.0, 9.0],
    [0.01, 8.99, 0.02, 8.98],
])
def test_propose_theta_stays_in_range(theta):
    rng = np.random.default_rng(123)
    theta = np.array(theta)
    for _ in range(300):
        prop = M.propose_theta(theta, rng, q_std=0.5, theta_min=0.0, theta_max=9.0)
        assert prop.shape == theta.shape
        assert np.all(prop >= 0.0)
        assert np.all(prop <= 9.0)


def test_propose_theta_does_not_mutate_input():
    theta = np.array([1.0, 2.0, 3.0, 4.0])
    before = theta.copy()
    M.propose_theta(theta, np.random.default_rng(0), 0.1, 0.0, 9.0)
    np.testing.assert_array_equal(theta, before)


def test_zero_sigma_proposal_is_identity():
    theta = np.array([1.0, 2.0, 3.0, 4.0])
    prop = M.propose_theta(theta, np.random.default_rng(0), 0.0, 0.0, 9.0)
    np.testing.assert_array_equal(prop, theta)


def test_proposal_is_centered_on_current_theta():
    rng = np.random.default_rng(99)
    theta = np.array([4.5, 4.5, 4.5, 4.5])
    props = np.array([M.propose_theta(theta, rng, 0.1, 0.0, 9.0) for _ in range(2000)])
    np.testing.assert_allclose(props.mean(axis=0), theta, atol=0.02)
    np.testing.assert_allclose(props.std(axis=0), 0.1, atol=0.02)


def test_theta_range_from_bounds():
    b = M.Bounds(x_min=0.0, x_max=10.0, y_min=2.0, y_max=6.0)
    assert b.theta_min == 1.0
    assert b.theta_max == 8.0
