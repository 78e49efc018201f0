import numpy as np
import pytest

import particle_mcmc as M

hypothesis = pytest.importorskip("hypothesis")
from hypothesis import given, settings
from hypothesis import strategies as st


coord = st.floats(min_value=-50.0, max_value=50.0, allow_nan=False, allow_infinity=False)
theta_st = st.lists(st.floats(min_value=-20.0, max_value=30.0, allow_nan=False), min_size=4, max_size=4)


@given(theta=theta_st, seed=st.integers(min_value=0, max_value=2**32 - 1),
       spread=st.floats(min_value=0.0, max_value=5.0))
@settings(max_examples=50)
def test_simulated_coordinates_within_bounds(theta, seed, spread):
    b = M.Bounds()
    conf = M.simulate(np.array(theta), np.random.default_rng(seed), b, 4, spread)
    assert all(b.x_min <= p.x <= b.x_max and b.y_min <= p.y <= b.y_max for p in conf)


@given(theta=theta_st, seed=st.integers(min_value=0, max_value=2**32 - 1),
       q_std=st.floats(min_value=0.0, max_value=10.0))
@settings(max_examples=50)
def test_proposals_within_theta_range(theta, seed, q_std):
    b = M.Bounds()
    prop = M.propose_theta(np.array(theta), np.random.default_rng(seed), q_std, b.theta_min, b.theta_max)
    assert np.all(prop >= b.theta_min) and np.all(prop <= b.theta_max)


@given(xs=st.lists(st.tuples(coord, coord), min_size=4, max_size=4))
@settings(max_examples=50)
def test_cost_non_negative_and_zero_only_on_target(xs):
    target = M.corner_target(M.Bounds())
    conf = tuple(M.Point(x, y) for x, y in xs)
    c = M.configuration_cost(conf, target)
    assert c >= 0.0
    assert (c == 0.0) == (conf == target)


@given(old=st.floats(min_value=0.0, max_value=100.0),
       delta=st.floats(min_value=1e-3, max_value=50.0))
@settings(max_examples=50)
def test_acceptance_probability_ranges(old, delta):
    assert M.acceptance_probability(old, old + delta) >= 1.0
    p = M.acceptance_probability(old + delta, old)
    assert 0.0 < p < 1.0
