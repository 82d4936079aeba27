#!/usr/bin/env python3
"""
Replay a recorded session through the tracking pipeline.

Refeeds the recorded GPS fixes (and motion samples, when present) into a
TrackingSession driven by a ReplayClock, so distance, splits and gap filling
can be re-evaluated with different settings without collecting new data.
Prints the resulting RunResult as JSON and optionally exports a GPX with the
raw and filtered tracks and a PNG plot.

Session file format (JSON, optionally gzipped):
    {"gps_samples": [{"timestamp": ms, "latitude": .., "longitude": ..,
                      "accuracy": .., "altitude": ..}, ...],
     "motion_samples": [{"timestamp": ms, "x": .., "y": .., "z": ..,
                         "alpha": .., "beta": .., "gamma": ..}, ...]}
Samples with "elapsed" (seconds) instead of "timestamp" are accepted too.
"""

from __future__ import annotations

import argparse
import gzip
import json
import logging
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from .clock import ReplayClock
from .config import TrackerConfig
from .errors import ConfigError
from .events import SessionEvent
from .models import FixOrigin, MotionSample, RawFix, RotationRate, RunResult, Vector3
from .scheduler import ManualScheduler
from .session import TrackingSession

logger = logging.getLogger(__name__)


@dataclass
class ReplayEvent:
    timestamp: float
    kind: str
    payload: Dict


def load_session(path: Path) -> Dict:
    opener = gzip.open if path.suffix == ".gz" else open
    with opener(path, "rt", encoding="utf-8") as handle:
        return json.load(handle)


def _sample_time_ms(sample: Dict) -> Optional[float]:
    ts = sample.get("timestamp")
    if ts is not None:
        return float(ts)
    elapsed = sample.get("elapsed")
    if elapsed is not None:
        return float(elapsed) * 1000.0
    return None


def build_events(data: Dict) -> List[ReplayEvent]:
    events: List[ReplayEvent] = []
    for kind, key in (("gps", "gps_samples"), ("motion", "motion_samples")):
        for sample in data.get(key) or []:
            ts = _sample_time_ms(sample)
            if ts is None:
                continue
            events.append(ReplayEvent(ts, kind, sample))

    if not any(ev.kind == "gps" for ev in events):
        raise ValueError("Session has no GPS samples to replay")

    # Stable sort keeps delivery order for equal timestamps
    events.sort(key=lambda ev: ev.timestamp)
    return events


def motion_sample_from(payload: Dict, timestamp: float) -> MotionSample:
    rotation = None
    if any(payload.get(k) is not None for k in ("alpha", "beta", "gamma")):
        rotation = RotationRate(
            float(payload.get("alpha") or 0.0),
            float(payload.get("beta") or 0.0),
            float(payload.get("gamma") or 0.0),
        )
    return MotionSample(
        acceleration=Vector3(
            float(payload.get("x", 0.0)),
            float(payload.get("y", 0.0)),
            float(payload.get("z", 0.0)),
        ),
        timestamp=timestamp,
        rotation_rate=rotation,
    )


def replay_session(
    data: Dict,
    config: TrackerConfig,
    run_timers: bool = False,
) -> Tuple[RunResult, Dict[str, List[Dict]]]:
    """
    Replay recorded samples and return the run result plus the tracks for export.

    With run_timers the periodic session timers (duration, pace, sampling and
    outage detection) fire at their due times on the replay clock, so outages
    in the recording are gap-filled the way they would be live.
    """
    events = build_events(data)
    clock = ReplayClock(events[0].timestamp)
    scheduler = ManualScheduler(clock)
    session = TrackingSession(config=config, scheduler=scheduler, clock=clock)

    raw_track: List[Dict] = []
    estimates: List[RawFix] = []
    session.subscribe(SessionEvent.POSITION_ESTIMATED, estimates.append)
    session.start()
    for event in events:
        if run_timers:
            scheduler.advance_to(event.timestamp)
        else:
            clock.set(event.timestamp)

        if event.kind == "gps":
            payload = dict(event.payload)
            payload["timestamp"] = event.timestamp
            payload.pop("elapsed", None)
            if session.add_position(payload):
                fix = RawFix.from_mapping(payload)
                raw_track.append({
                    "timestamp": fix.timestamp,
                    "lat": fix.latitude,
                    "lon": fix.longitude,
                    "uncertainty_m": fix.accuracy,
                })
        else:
            session.process_motion(motion_sample_from(event.payload, event.timestamp))

    positions = session.positions
    result = session.stop()

    tracks = {
        "gps": raw_track,
        "filtered": [
            {"timestamp": p.timestamp, "lat": p.latitude, "lon": p.longitude,
             "uncertainty_m": p.accuracy}
            for p in positions if p.origin is FixOrigin.REAL
        ],
        # Every published estimate, whether or not it passed the accuracy gate
        "synthetic": [
            {"timestamp": fix.timestamp, "lat": fix.latitude, "lon": fix.longitude,
             "uncertainty_m": fix.accuracy}
            for fix in estimates
        ],
    }
    return result, tracks


def write_gpx(tracks: Dict[str, List[Dict]], output_path: Path) -> None:
    def iso(ts_ms: float) -> str:
        return datetime.fromtimestamp(ts_ms / 1000.0, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")

    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<gpx version="1.1" creator="runtrack-replay" xmlns="http://www.topografix.com/GPX/1/1">',
        "  <metadata>",
        f"    <time>{datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')}</time>",
        "    <desc>Replayed session with raw and filtered tracks</desc>",
        "  </metadata>",
    ]

    def write_track(name: str, desc: str, points: List[Dict]) -> None:
        if not points:
            return
        lines.append("  <trk>")
        lines.append(f"    <name>{name}</name>")
        lines.append(f"    <desc>{desc}</desc>")
        lines.append("    <trkseg>")
        for pt in points:
            lines.append(f'      <trkpt lat="{pt["lat"]:.7f}" lon="{pt["lon"]:.7f}">')
            lines.append(f"        <time>{iso(pt['timestamp'])}</time>")
            if "uncertainty_m" in pt:
                lines.append(
                    f'        <extensions><uncertainty>{pt["uncertainty_m"]:.2f}</uncertainty></extensions>'
                )
            lines.append("      </trkpt>")
        lines.append("    </trkseg>")
        lines.append("  </trk>")

    write_track("GPS", "Raw GPS fixes accepted by the quality gate", tracks.get("gps", []))
    write_track("Filtered", "Filtered positions", tracks.get("filtered", []))
    write_track("Gap fill", "Predicted and dead-reckoned positions", tracks.get("synthetic", []))

    lines.append("</gpx>")
    output_path.write_text("\n".join(lines), encoding="utf-8")


def plot_tracks(tracks: Dict[str, List[Dict]], output_path: Path, title: str = "") -> None:
    import matplotlib
    matplotlib.use("Agg")  # Headless backend
    import matplotlib.pyplot as plt

    fig, ax = plt.subplots(figsize=(8, 8))
    styles = {
        "gps": ("Raw GPS", {"color": "lightgray", "marker": ".", "linestyle": "-"}),
        "filtered": ("Filtered", {"color": "tab:blue", "linewidth": 2}),
        "synthetic": ("Gap fill", {"color": "tab:red", "marker": "x", "linestyle": "none"}),
    }
    for key, (label, style) in styles.items():
        points = tracks.get(key) or []
        if points:
            ax.plot([p["lon"] for p in points], [p["lat"] for p in points], label=label, **style)

    ax.set_xlabel("Longitude")
    ax.set_ylabel("Latitude")
    ax.set_aspect("equal", adjustable="datalim")
    ax.grid(True, alpha=0.3)
    ax.legend()
    if title:
        ax.set_title(title)
    fig.tight_layout()
    fig.savefig(output_path, dpi=150)
    plt.close(fig)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("session", type=Path, help="Path to a session .json or .json.gz file")
    parser.add_argument("--unit", default="km", choices=["km", "mile"], help="Distance unit (default: km)")
    parser.add_argument("--activity", default="run", choices=["run", "walk", "cycle"],
                        help="Activity type (default: run)")
    parser.add_argument("--filter", dest="filter_mode", default="kalman", choices=["kalman", "weighted"],
                        help="Position filter (default: kalman)")
    parser.add_argument("--goal", type=float, help="Distance goal in meters")
    parser.add_argument("--gpx", type=Path, help="Write raw/filtered tracks to this GPX file")
    parser.add_argument("--plot", type=Path, help="Write a trajectory plot to this PNG file")
    parser.add_argument("--outage-tick", action="store_true",
                        help="Fire the session timers on the replay clock (enables gap filling)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        config = TrackerConfig.from_dict({
            "distance_unit": args.unit,
            "activity_type": args.activity,
            "filter_mode": args.filter_mode,
            "distance_goal_m": args.goal,
        })
    except ConfigError as e:
        logger.error("%s", e)
        return 2

    try:
        data = load_session(args.session)
        result, tracks = replay_session(data, config, run_timers=args.outage_tick)
    except (OSError, ValueError) as e:
        logger.error("Could not replay %s: %s", args.session, e)
        return 1

    print(json.dumps(result.to_dict(), indent=2))

    if args.gpx:
        write_gpx(tracks, args.gpx)
        logger.info("GPX written to %s", args.gpx)
    if args.plot:
        plot_tracks(tracks, args.plot, title=args.session.name)
        logger.info("Plot written to %s", args.plot)
    return 0


if __name__ == "__main__":
    sys.exit(main())
