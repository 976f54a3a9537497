import pytest
from fedspace.scoring import assign_grade, check_weights, clamp, make_factor, round_half_up, weighted_total


@pytest.mark.parametrize("score,grade", [
    (100, "A+"), (95, "A+"), (94.9, "A"), (90, "A"), (85, "B+"), (80, "B"),
    (75, "C+"), (70.3, "C"), (70, "C"), (69.9, "D"), (60, "D"), (59.9, "F"), (0, "F"),
])
def test_assign_grade_boundaries(score, grade):
    """Verify each grade threshold is inclusive."""
    assert assign_grade(score) == grade


def test_round_half_up():
    assert round_half_up(70.25, 1) == 70.3
    assert round_half_up(70.275, 1) == 70.3
    assert round_half_up(2.5) == 3
    assert round_half_up(19.0986, 1) == 19.1


def test_clamp():
    assert clamp(-5) == 0
    assert clamp(150) == 100
    assert clamp(42.5) == 42.5


def test_make_factor_clamps_and_rounds():
    """Verify factor scores stay in 0-100 with one decimal."""
    f = make_factor(19.0986, 25, "density")
    assert f.score == 19.1
    assert f.weighted == pytest.approx(4.775)
    assert make_factor(130, 10, "x").score == 100
    assert make_factor(-4, 10, "x").score == 0


def test_weighted_total():
    factors = [make_factor(100, 60, "a"), make_factor(50, 40, "b")]
    assert weighted_total(factors) == 80.0


def test_check_weights():
    check_weights({"a": 60, "b": 40})
    with pytest.raises(ValueError):
        check_weights({"a": 60, "b": 30})
