import pytest
import particle_mcmc as M


def test_manhattan_distance_known_values():
    a = M.Point(1.0, 2.0)
    b = M.Point(4.0, -2.0)
    assert a.manhattan_distance(b) == pytest.approx(7.0)
    assert b.manhattan_distance(a) == pytest.approx(7.0)
    assert a.manhattan_distance(a) == 0.0


def test_squared_distance_known_values():
    a = M.Point(1.0, 2.0)
    b = M.Point(4.0, -2.0)
    # 3^2 + 4^2
    assert a.squared_distance(b) == pytest.approx(25.0)
    assert a.squared_distance(a) == 0.0


def test_points_are_immutable_values():
    p = M.Point(1.0, 2.0)
    assert p == M.Point(1.0, 2.0)
    with pytest.raises(Exception):
        p.x = 3.0


def test_corner_target_order():
    target = M.corner_target(M.Bounds())
    assert target == (
        M.Point(9.0, 9.0),
        M.Point(9.0, 0.0),
        M.Point(0.0, 0.0),
        M.Point(0.0, 9.0),
    )


def test_str_formatting():
    assert str(M.Point(9.0, 0.5)) == "{9, 0.5}"
    assert M.format_configuration([M.Point(1.0, 2.0), M.Point(3.0, 4.0)]) == "[{1, 2}, {3, 4}]"
