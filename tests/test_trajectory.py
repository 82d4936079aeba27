"""Tests for trajectory prediction and GPS gap filling."""

from __future__ import annotations

import math

import pytest

from runtrack.gap_filler import GapFiller
from runtrack.models import FixOrigin
from runtrack.trajectory import LinearRegression, TrajectoryPredictor

from conftest import make_fix


def _straight_line(predictor, points=3, step_deg=0.0001, interval_ms=1000):
    for i in range(points):
        predictor.add_position(37.0 + i * step_deg, -122.0, i * interval_ms)


# --- LinearRegression ------------------------------------------------
def test_regression_fits_line() -> None:
    model = LinearRegression()
    model.train([0, 1, 2], [1, 3, 5])
    assert model.slope == pytest.approx(2.0)
    assert model.intercept == pytest.approx(1.0)
    assert model.predict(3) == pytest.approx(7.0)


def test_regression_degenerate_x_is_flat_mean() -> None:
    model = LinearRegression()
    model.train([5, 5, 5], [1, 2, 3])
    assert model.slope == 0.0
    assert model.intercept == pytest.approx(2.0)


def test_untrained_regression_predicts_none() -> None:
    model = LinearRegression()
    model.train([1], [1])
    assert model.predict(1) is None


# --- TrajectoryPredictor ---------------------------------------------
def test_prediction_needs_three_points() -> None:
    predictor = TrajectoryPredictor()
    _straight_line(predictor, points=2)
    assert predictor.predict_position(5000) is None


def test_linear_extrapolation_and_confidence() -> None:
    predictor = TrajectoryPredictor()
    _straight_line(predictor, points=3)

    predicted = predictor.predict_position(4000)
    assert predicted['lat'] == pytest.approx(37.0004)
    assert predicted['lon'] == pytest.approx(-122.0)
    assert predicted['is_predicted'] is True
    assert predicted['confidence'] == pytest.approx(0.9 * math.exp(-2.0 / 30.0))


def test_confidence_is_floored() -> None:
    predictor = TrajectoryPredictor()
    _straight_line(predictor, points=3)
    assert predictor.predict_position(1_000_000)['confidence'] == 0.1


def test_history_is_bounded_and_derivatives_tracked() -> None:
    predictor = TrajectoryPredictor(history_size=20)
    _straight_line(predictor, points=25)
    assert len(predictor.position_history) == 20
    assert len(predictor.velocity_history) == 20
    assert predictor.velocity_history[-1]['lat'] == pytest.approx(0.0001)
    assert predictor.acceleration_history[-1]['lat'] == pytest.approx(0.0, abs=1e-12)


def test_speed_and_heading_models_train_when_present() -> None:
    predictor = TrajectoryPredictor()
    for i in range(4):
        predictor.add_position(37.0 + i * 0.0001, -122.0, i * 1000, speed=3.0 + i, heading=10.0)
    assert predictor.speed_model.trained
    assert predictor.speed_model.slope == pytest.approx(1.0)
    assert predictor.heading_model.predict(10) == pytest.approx(10.0)


def test_movement_characteristics() -> None:
    predictor = TrajectoryPredictor()
    assert predictor.get_movement_characteristics()['average_speed'] == 0.0

    _straight_line(predictor, points=5, step_deg=0.0001, interval_ms=1000)
    stats = predictor.get_movement_characteristics()
    assert stats['average_speed'] == pytest.approx(11.12, abs=0.01)
    assert stats['consistency'] == pytest.approx(1.0)
    assert stats['direction'] == pytest.approx(0.0)
    assert stats['predictability'] == pytest.approx(math.exp(-stats['average_speed'] / 10.0))


def test_reset_clears_history() -> None:
    predictor = TrajectoryPredictor()
    _straight_line(predictor, points=3)
    predictor.reset()
    assert predictor.predict_position(4000) is None
    assert not predictor.lat_model.trained


# --- GapFiller -------------------------------------------------------
def _filler_with_history(max_gap_ms=60000):
    filler = GapFiller(max_gap_ms=max_gap_ms)
    for i in range(3):
        filler.process_position(make_fix(37.0 + i * 0.0001, -122.0, i * 1000), now=i * 1000)
    return filler


def test_fill_gap_before_cap_returns_bounded_prediction() -> None:
    filler = _filler_with_history()
    predicted = filler.fill_gap(5000)

    assert filler.in_gap
    assert filler.gap_start_time == 5000
    assert predicted is not None
    assert 0.3 < predicted['confidence'] <= 0.9


def test_fill_gap_stops_after_max_duration() -> None:
    filler = _filler_with_history(max_gap_ms=5000)
    assert filler.fill_gap(3000) is not None
    assert filler.fill_gap(8000) is not None
    assert filler.fill_gap(8001) is None


def test_default_cap_is_sixty_seconds() -> None:
    filler = _filler_with_history()
    filler.fill_gap(2500)
    assert filler.fill_gap(2500 + 60001) is None


def test_fill_gap_without_history_is_none() -> None:
    filler = GapFiller()
    filler.process_position(make_fix(37.0, -122.0, 0), now=0)
    assert filler.process_position(None, now=5000) is None
    assert filler.in_gap


def test_real_fix_closes_gap_and_synthetic_does_not() -> None:
    filler = _filler_with_history()
    filler.process_position(None, now=6000)
    assert filler.in_gap

    synthetic = make_fix(37.0005, -122.0, 7000, origin=FixOrigin.PREDICTED)
    filler.process_position(synthetic, now=7000)
    assert filler.in_gap
    assert len(filler.predictor.position_history) == 3

    fix = make_fix(37.0004, -122.0, 8000)
    assert filler.process_position(fix, now=8000) is fix
    assert not filler.in_gap
    assert filler.gap_start_time is None


def test_statistics() -> None:
    filler = _filler_with_history()
    filler.fill_gap(4000)
    stats = filler.get_statistics(now=6000)
    assert stats['in_gap'] is True
    assert stats['gap_duration_ms'] == 2000
    assert stats['position_history'] == 3
    assert stats['filled_count'] == 1
    assert 'average_speed' in stats
