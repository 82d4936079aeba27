"""Tests for the session replay tool."""

from __future__ import annotations

import gzip
import json

import pytest

from runtrack.config import TrackerConfig
from runtrack.replay import build_events, load_session, main, motion_sample_from, replay_session

BASE_TS = 1_700_000_000_000


def _session(gps, motion=None):
    return {"gps_samples": gps, "motion_samples": motion or []}


def _gps(lat, lon, ts, accuracy=5.0, **extra):
    sample = {"latitude": lat, "longitude": lon, "accuracy": accuracy, "timestamp": ts}
    sample.update(extra)
    return sample


@pytest.fixture
def session_file(tmp_path):
    data = _session([
        _gps(37.0, -122.0, BASE_TS),
        _gps(37.00898, -122.0, BASE_TS + 1000),
    ])
    path = tmp_path / "session.json.gz"
    with gzip.open(path, "wt", encoding="utf-8") as handle:
        json.dump(data, handle)
    return path


def test_build_events_orders_gps_and_motion() -> None:
    events = build_events(_session(
        [_gps(37.0, -122.0, None, elapsed=2.0), _gps(37.0, -122.0, 500)],
        [{"elapsed": 1.0, "x": 0, "y": 0, "z": 9.8}, {"x": 1}],
    ))
    assert [(e.timestamp, e.kind) for e in events] == [(500, "gps"), (1000, "motion"), (2000, "gps")]


def test_build_events_requires_gps() -> None:
    with pytest.raises(ValueError):
        build_events(_session([], [{"timestamp": 0, "z": 9.8}]))


def test_motion_sample_rotation_only_when_present() -> None:
    assert motion_sample_from({"x": 1, "y": 2, "z": 2}, 0).rotation_rate is None
    sample = motion_sample_from({"z": 9.8, "alpha": 25}, 10)
    assert sample.rotation_rate.alpha == 25.0
    assert sample.acceleration.magnitude == pytest.approx(9.8)


def test_load_plain_json(tmp_path) -> None:
    path = tmp_path / "session.json"
    path.write_text(json.dumps(_session([_gps(1.0, 2.0, 0)])), encoding="utf-8")
    assert load_session(path)["gps_samples"][0]["latitude"] == 1.0


def test_replay_two_fixes() -> None:
    result, tracks = replay_session(
        _session([_gps(37.0, -122.0, BASE_TS), _gps(37.00898, -122.0, BASE_TS + 1000),
                  _gps(37.01, -122.0, BASE_TS + 1500, accuracy=50.0)]),
        TrackerConfig(),
    )
    assert result.distance_m == pytest.approx(998.5, abs=0.5)
    assert result.duration_s == 1.0
    assert len(tracks["gps"]) == 2
    assert len(tracks["filtered"]) == 2
    assert tracks["synthetic"] == []


def test_replay_nested_coords_payload() -> None:
    gps = [
        {"timestamp": BASE_TS, "coords": {"latitude": 37.0, "longitude": -122.0, "accuracy": 5}},
        {"timestamp": BASE_TS + 1000, "coords": {"latitude": 37.00898, "longitude": -122.0, "accuracy": 4}},
    ]
    result, tracks = replay_session(_session(gps), TrackerConfig())

    assert result.distance_m == pytest.approx(998.5, abs=0.5)
    assert [(p["lat"], p["uncertainty_m"]) for p in tracks["gps"]] == [(37.0, 5.0), (37.00898, 4.0)]
    assert tracks["gps"][1]["timestamp"] == BASE_TS + 1000


def test_replay_with_timers_fills_outage() -> None:
    gps = [_gps(37.0 + i * 0.00003, -122.0, BASE_TS + i * 1000) for i in range(4)]
    gps.append(_gps(37.0004, -122.0, BASE_TS + 30000))

    result, tracks = replay_session(_session(gps), TrackerConfig(), run_timers=True)

    assert tracks["synthetic"]
    assert all(BASE_TS + 10000 < p["timestamp"] < BASE_TS + 30000 for p in tracks["synthetic"])
    assert result.duration_s == 30.0


def test_main_prints_result_and_writes_gpx(session_file, tmp_path, capsys) -> None:
    gpx_path = tmp_path / "out.gpx"
    assert main([str(session_file), "--unit", "mile", "--gpx", str(gpx_path)]) == 0

    output = json.loads(capsys.readouterr().out)
    assert output["distance"] == pytest.approx(998.5, abs=0.5)
    assert output["unit"] == "mile"

    gpx = gpx_path.read_text(encoding="utf-8")
    assert gpx.startswith('<?xml version="1.0"')
    assert gpx.count("<trkpt") == 4
    assert "<name>Filtered</name>" in gpx


def test_main_outage_tick_and_cycle(session_file, capsys) -> None:
    assert main([str(session_file), "--activity", "cycle", "--outage-tick"]) == 0
    output = json.loads(capsys.readouterr().out)
    assert output["activity_type"] == "cycle"
    assert output["average_speed"]["unit"] == "km/h"


def test_main_reports_unreadable_file(tmp_path) -> None:
    assert main([str(tmp_path / "missing.json")]) == 1
