"""
TrackingSession - the tracking state machine.

Ingests position fixes, runs them through the quality gate and the position
filter, and keeps distance, duration, pace (or speed), splits, elevation and
step estimates up to date. Four periodic timers run while tracking:

    duration   1s   wall-clock duration when no fixes arrive
    pace       1s   pace (run/walk) or smoothed speed (cycle)
    sampling   30s  adaptive location watcher interval
    outage     5s   gap filling when real fixes stop arriving

States: IDLE -> TRACKING <-> PAUSED -> STOPPED. A stopped session can be
started again, which resets every accumulator.

Threading model: fixes, timer ticks and motion samples arrive on different
threads. Every handler runs under one RLock owned by the session, and timer
callbacks carry the generation they were started in so that a tick that was
already waiting on the lock when the session was torn down does nothing.
"""

import logging
import math
import threading
from collections.abc import Mapping
from dataclasses import replace
from enum import Enum

from .adaptive_sampling import AdaptiveSamplingController
from .capabilities import NullLocationSource, NullMotionSource, NullWakeLock
from .clock import SystemClock
from .config import ActivityType, TrackerConfig
from .errors import LocationPermissionError
from .events import EventBus, SessionEvent
from .filters import get_filter
from .filters.utils import haversine_distance, initial_bearing
from .gap_filler import GapFiller
from .models import (
    Activity, ElevationState, FilteredPosition, FixOrigin, PositionRecord, RawFix,
    RunResult, SessionSnapshot, Speed, Split,
)
from .pacing import calculate_pace, completed_units, splits_from_positions, to_display_speed
from .scheduler import ThreadScheduler
from .sensor_fusion import SensorFusionManager
from .trajectory import TrajectoryPredictor

logger = logging.getLogger(__name__)

DURATION_INTERVAL_S = 1
PACE_INTERVAL_S = 1
SAMPLING_INTERVAL_S = 30
OUTAGE_INTERVAL_S = 5

OUTAGE_THRESHOLD_MS = 10000
PREDICTION_MIN_CONFIDENCE = 0.5
ESTIMATE_MIN_CONFIDENCE = 0.3
PREDICTED_ACCURACY_M = 25.0
ESTIMATED_ACCURACY_M = 50.0

SPEED_WINDOW_MS = 10000
SPEED_SMOOTHING = 0.3
SPEED_DECAY = 0.8
ELEVATION_NOISE_FLOOR_M = 1.0
ACTIVITY_LOG_CONFIDENCE = 0.7


class SessionState(str, Enum):
    IDLE = "idle"
    TRACKING = "tracking"
    PAUSED = "paused"
    STOPPED = "stopped"


class TrackingSession:
    """
    One tracking session and its collaborators.

    Args:
        config (TrackerConfig): Unit, filter mode, activity type and goal
        location_source (LocationSource): Delivers fixes to add_position
        motion_source (MotionSource): Accelerometer/gyroscope samples
        wake_lock (WakeLock): Held while actively tracking
        battery_reader (BatteryReader): Battery level for adaptive sampling
        visibility (VisibilityProvider): Foreground/background state
        scheduler: ThreadScheduler (default) or ManualScheduler
        clock: SystemClock (default) or ReplayClock
    """

    def __init__(self, config=None, location_source=None, motion_source=None, wake_lock=None,
                 battery_reader=None, visibility=None, scheduler=None, clock=None):
        self.config = config or TrackerConfig()
        self.location_source = location_source or NullLocationSource()
        self.motion_source = motion_source or NullMotionSource()
        self.wake_lock = wake_lock or NullWakeLock()
        self.scheduler = scheduler or ThreadScheduler()
        self.clock = clock or SystemClock()

        self.events = EventBus()
        self.sampling = AdaptiveSamplingController(battery_reader, visibility)
        self.position_filter = self._build_filter()
        self.predictor = TrajectoryPredictor()
        self.gap_filler = GapFiller(self.predictor)
        self.sensor_fusion = SensorFusionManager(self.motion_source, step_length_m=self.config.step_length_m)
        self.sensor_fusion.on_step_detected(self._on_step_detected)

        self.lock = threading.RLock()
        self._state = SessionState.IDLE
        self._generation = 0
        self._timers = []
        self.watch_id = None

        self._reset_accumulators()

    # ------------------------------------------------------------------
    # Setup helpers
    # ------------------------------------------------------------------

    def _build_filter(self):
        return get_filter(
            self.config.filter_mode,
            activity_type=self.config.activity_type,
            window_size=self.config.weighted_window,
        )

    def _reset_accumulators(self):
        self._distance = 0.0
        self._duration = 0.0
        self._pace = 0.0
        self._smoothed_speed_mps = 0.0
        self._current_speed = Speed(0.0, self.config.distance_unit.speed_label)
        self._splits = []
        self._last_split_distance = 0.0
        self._positions = []
        self._elevation = ElevationState()
        self._estimated_steps = 0
        self._detected_steps = 0

        self.start_time = 0.0
        self._accumulated_paused_ms = 0.0
        self.last_pause_time = None
        self._last_fix = None
        self._last_real_fix_time = None
        self._last_fix_received_ms = None
        self._goal_notified = False
        self._sampling_interval_ms = None

    def _reset_components(self):
        self.position_filter.reset()
        self.gap_filler.reset()
        self.sensor_fusion.reset()

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def state(self):
        return self._state

    @property
    def is_tracking(self):
        return self._state in (SessionState.TRACKING, SessionState.PAUSED)

    @property
    def is_paused(self):
        return self._state is SessionState.PAUSED

    @property
    def distance_m(self):
        return self._distance

    @property
    def duration_s(self):
        return self._duration

    @property
    def pace(self):
        return self._pace

    @property
    def current_speed(self):
        return self._current_speed

    @property
    def splits(self):
        return tuple(self._splits)

    @property
    def elevation(self):
        return self._elevation.copy()

    @property
    def estimated_steps(self):
        return self._estimated_steps

    @property
    def detected_steps(self):
        return self._detected_steps

    @property
    def accumulated_paused_ms(self):
        return self._accumulated_paused_ms

    @property
    def positions(self):
        return tuple(self._positions)

    @property
    def sampling_interval_ms(self):
        return self._sampling_interval_ms

    @property
    def distance_goal(self):
        return self.config.distance_goal_m

    @property
    def unit_meters(self):
        return self.config.unit_meters

    def _status(self):
        return {
            'state': self._state.value,
            'is_tracking': self.is_tracking,
            'is_paused': self.is_paused,
        }

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, event, listener):
        return self.events.subscribe(event, listener)

    def unsubscribe(self, event, listener):
        return self.events.unsubscribe(event, listener)

    def _emit(self, event, value=None):
        self.events.emit(event, value)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self):
        """
        Start a fresh session.

        Returns:
            bool: True if tracking started, False if the call was invalid or the
            location permission was refused
        """
        with self.lock:
            if self._state is SessionState.TRACKING:
                return True
            if self._state is SessionState.PAUSED:
                logger.warning("start() ignored while paused; use resume()")
                return False

            self._reset_accumulators()
            self._reset_components()
            self.position_filter.set_activity(self.config.activity_type)
            self.start_time = self.clock.now_ms()
            self._state = SessionState.TRACKING
            self._generation += 1

            self.sensor_fusion.initialize(start_tracking=True)
            if not self._activate():
                return False

            logger.info("Tracking started (%s, %s, %s filter)",
                        self.config.activity_type.value,
                        self.config.distance_unit.value,
                        self.config.filter_mode.value)
            self._emit(SessionEvent.STATUS_CHANGE, self._status())
            return True

    def _activate(self):
        """Take the wake-lock, start the watcher and the timers. False on permission failure."""
        self._acquire_wake_lock()
        try:
            self._start_location_watcher()
        except LocationPermissionError as e:
            logger.warning("Location permission denied: %s", e)
            self._teardown()
            self._state = SessionState.IDLE
            self._emit(SessionEvent.PERMISSION_ERROR, e)
            return False
        except Exception:
            logger.exception("Failed to start location watcher")
            self._teardown()
            self._state = SessionState.IDLE
            raise
        self._start_timers()
        return True

    def pause(self):
        with self.lock:
            if self._state is not SessionState.TRACKING:
                logger.warning("pause() ignored in state %s", self._state.value)
                return False

            self._state = SessionState.PAUSED
            self.last_pause_time = self.clock.now_ms()
            self._generation += 1
            self._cancel_timers()
            self._release_location_watcher()
            self._release_wake_lock()

            logger.info("Tracking paused at %.1fm", self._distance)
            self._emit(SessionEvent.STATUS_CHANGE, self._status())
            return True

    def resume(self):
        with self.lock:
            if self._state is not SessionState.PAUSED:
                logger.warning("resume() ignored in state %s", self._state.value)
                return False

            now = self.clock.now_ms()
            if self.last_pause_time is not None:
                self._accumulated_paused_ms += now - self.last_pause_time
            self.last_pause_time = None
            self._state = SessionState.TRACKING
            self._generation += 1

            # Sessions restored in the paused state have not started their sensors yet
            if not self.sensor_fusion.is_streaming:
                self.sensor_fusion.initialize(start_tracking=True)
            if not self._activate():
                return False

            logger.info("Tracking resumed (paused %.1fs total)", self._accumulated_paused_ms / 1000.0)
            self._emit(SessionEvent.STATUS_CHANGE, self._status())
            return True

    def stop(self):
        """
        Finish the session.

        Returns:
            RunResult or None: None when the session was not tracking
        """
        with self.lock:
            if not self.is_tracking:
                logger.warning("stop() ignored in state %s", self._state.value)
                return None

            now = self.clock.now_ms()
            paused_ms = self._accumulated_paused_ms
            if self._state is SessionState.PAUSED and self.last_pause_time is not None:
                paused_ms += now - self.last_pause_time

            self._duration = float(math.floor((now - self.start_time - paused_ms) / 1000.0))
            if self._distance > 0 and self._duration > 0:
                self._pace = calculate_pace(self._distance, self._duration, self.config.distance_unit)

            if not self._splits and self._positions:
                self._splits = splits_from_positions(
                    self._positions, self.config.distance_unit, final_duration_s=self._duration,
                )
                if self._splits:
                    logger.info("Generated %d splits on run completion", len(self._splits))

            average_speed = None
            total_steps = None
            activity_type = self.config.activity_type
            if activity_type is ActivityType.CYCLE and self._distance > 0 and self._duration > 0:
                average_speed = to_display_speed(self._distance / self._duration, self.config.distance_unit)
            elif activity_type is ActivityType.WALK:
                total_steps = self._steps_for_distance()

            result = RunResult(
                distance_m=self._distance,
                duration_s=self._duration,
                pace=self._pace,
                splits=tuple(self._splits),
                elevation_gain=self._elevation.gain,
                elevation_loss=self._elevation.loss,
                unit=self.config.distance_unit,
                activity_type=activity_type,
                average_speed=average_speed,
                estimated_total_steps=total_steps,
            )

            self._teardown()
            self.sensor_fusion.stop_tracking()
            self._state = SessionState.STOPPED
            self.config = self.config.with_changes(distance_goal_m=None)

            logger.info("Tracking stopped: %.1fm in %.0fs", result.distance_m, result.duration_s)
            self._emit(SessionEvent.STATUS_CHANGE, self._status())
            self._emit(SessionEvent.RUN_COMPLETED, result)
            return result

    def _teardown(self):
        self._generation += 1
        self._cancel_timers()
        self._release_location_watcher()
        self._release_wake_lock()
        self.sensor_fusion.cancel_initialization()

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------

    def _acquire_wake_lock(self):
        try:
            self.wake_lock.acquire()
        except Exception as e:
            logger.warning("Wake-lock unavailable: %s", e)

    def _release_wake_lock(self):
        try:
            self.wake_lock.release()
        except Exception as e:
            logger.warning("Wake-lock release failed: %s", e)

    def _start_location_watcher(self):
        self._release_location_watcher()
        request = self.sampling.location_request(self.config.activity_type)
        self.watch_id = self.location_source.start(request, self._on_location)
        logger.debug("Location watcher %s started (interval %dms)", self.watch_id, request.interval_ms)

    def _release_location_watcher(self):
        if self.watch_id is None:
            return
        try:
            self.location_source.stop()
        except Exception as e:
            logger.warning("Error releasing location watcher: %s", e)
        self.watch_id = None

    def restart_location_watcher(self):
        """Restart the watcher after a runtime error tore it down."""
        with self.lock:
            if self._state is not SessionState.TRACKING:
                logger.warning("restart_location_watcher() ignored in state %s", self._state.value)
                return False
            try:
                self._start_location_watcher()
            except LocationPermissionError as e:
                self._on_permission_revoked(e)
                return False
            return True

    def _on_location(self, fix, error=None):
        if error is not None:
            self.handle_location_error(error)
        elif fix is not None:
            self.add_position(fix)

    def handle_location_error(self, error):
        """
        Handle an error delivered by the location source.

        A permission error stops the session. Any other error tears the watcher
        down; the caller decides when to restart_location_watcher().
        """
        with self.lock:
            if isinstance(error, LocationPermissionError):
                self._on_permission_revoked(error)
                return

            logger.error("Location tracking error: %s", error)
            self._release_location_watcher()
            self._emit(SessionEvent.LOCATION_ERROR, error)

    def _on_permission_revoked(self, error):
        logger.warning("Location permission revoked: %s", error)
        self._emit(SessionEvent.PERMISSION_ERROR, error)
        if self.is_tracking:
            self.stop()

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _start_timers(self):
        self._cancel_timers()
        generation = self._generation
        for name, interval, callback in (
            ('duration', DURATION_INTERVAL_S, self.tick_duration),
            ('pace', PACE_INTERVAL_S, self.tick_pace),
            ('sampling', SAMPLING_INTERVAL_S, self.tick_sampling),
            ('outage', OUTAGE_INTERVAL_S, self.tick_outage),
        ):
            self._timers.append(self.scheduler.every(interval, self._guarded(generation, callback), name=name))

    def _guarded(self, generation, callback):
        def run():
            with self.lock:
                if generation != self._generation or self._state is not SessionState.TRACKING:
                    return
                callback()
        return run

    def _cancel_timers(self):
        for timer in self._timers:
            timer.cancel()
        self._timers = []

    def tick_duration(self):
        with self.lock:
            if self._state is not SessionState.TRACKING:
                return
            now = self.clock.now_ms()
            # A fix in the last second already set the duration from its own timestamp
            if self._last_fix_received_ms is not None and now - self._last_fix_received_ms < 1000:
                return
            self._duration = (now - self.start_time - self._accumulated_paused_ms) / 1000.0
            self._emit(SessionEvent.DURATION_CHANGE, self._duration)

    def tick_pace(self):
        with self.lock:
            if self._state is not SessionState.TRACKING:
                return
            if self.config.activity_type is ActivityType.CYCLE:
                self._update_speed()
            else:
                self._update_pace()

    def tick_sampling(self):
        with self.lock:
            if self._state is not SessionState.TRACKING or self.watch_id is None:
                return
            interval = self.sampling.current_interval(
                self.config.activity_type,
                speed_mps=self._current_speed_mps(),
                distance_m=self._distance,
                goal_m=self.config.distance_goal_m,
            )
            request = self.sampling.location_request(self.config.activity_type).with_interval(interval)
            try:
                self.location_source.configure(request)
            except Exception as e:
                logger.warning("Failed to update GPS sampling rate: %s", e)
                return
            self._sampling_interval_ms = interval
            logger.info("GPS sampling interval updated to %dms", interval)

    def tick_outage(self):
        """
        Estimate a position when real fixes have stopped arriving.

        The estimate is published as position_estimated and then offered to
        add_position(), where it faces the same accuracy gate as a real fix.
        """
        with self.lock:
            if self._state is not SessionState.TRACKING:
                return
            now = self.clock.now_ms()

            if self._last_real_fix_time is not None and now - self._last_real_fix_time > OUTAGE_THRESHOLD_MS:
                logger.debug("GPS outage detected, using gap filling")
                synthetic = self._synthesize_fix(now)
                if synthetic is not None:
                    self._emit(SessionEvent.POSITION_ESTIMATED, synthetic)
                    self.add_position(synthetic)

            label = self.sensor_fusion.get_current_activity()
            if label.confidence > ACTIVITY_LOG_CONFIDENCE and label.activity is not Activity.UNKNOWN:
                logger.info("Detected activity: %s (%.0f%% confidence)",
                            label.activity.value, label.confidence * 100)
                self._emit(SessionEvent.ACTIVITY_DETECTED, label)

    def _synthesize_fix(self, now):
        predicted = self.gap_filler.fill_gap(now)
        if predicted is not None and predicted['confidence'] > PREDICTION_MIN_CONFIDENCE:
            logger.info("Trajectory prediction: %.6f, %.6f (confidence: %.2f)",
                        predicted['lat'], predicted['lon'], predicted['confidence'])
            return RawFix(
                latitude=predicted['lat'],
                longitude=predicted['lon'],
                accuracy=PREDICTED_ACCURACY_M / predicted['confidence'],
                timestamp=now,
                origin=FixOrigin.PREDICTED,
            )

        # Zero steps since the last fix would just replay the last real position
        estimated = self.sensor_fusion.get_estimated_position()
        if estimated is not None and estimated['steps'] > 0 and \
                estimated['confidence'] > ESTIMATE_MIN_CONFIDENCE:
            logger.info("Sensor fusion fallback: %.6f, %.6f (confidence: %.2f)",
                        estimated['lat'], estimated['lon'], estimated['confidence'])
            return RawFix(
                latitude=estimated['lat'],
                longitude=estimated['lon'],
                accuracy=ESTIMATED_ACCURACY_M / estimated['confidence'],
                timestamp=now,
                origin=FixOrigin.ESTIMATED,
            )
        return None

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def add_position(self, fix):
        """
        Ingest one fix (RawFix or platform mapping).

        Returns:
            bool: True if the fix passed the quality gate
        """
        with self.lock:
            if self._state is not SessionState.TRACKING:
                return False

            if isinstance(fix, Mapping):
                try:
                    fix = RawFix.from_mapping(fix, default_timestamp=self.clock.now_ms())
                except (TypeError, ValueError) as e:
                    logger.debug("Position filtered: malformed payload (%s)", e)
                    return False

            if not fix.accuracy <= self.config.max_accuracy_m:
                logger.debug("Position filtered: poor accuracy (%sm)", fix.accuracy)
                return False
            if not fix.has_valid_coordinates():
                logger.debug("Position filtered: invalid coordinates (%s, %s)", fix.latitude, fix.longitude)
                return False

            if fix.is_synthetic:
                filtered = FilteredPosition(
                    latitude=fix.latitude,
                    longitude=fix.longitude,
                    accuracy=fix.accuracy,
                    timestamp=fix.timestamp,
                    altitude=fix.altitude if fix.has_altitude else None,
                )
            else:
                filtered = self.position_filter.filter(fix)

            self._last_fix_received_ms = self.clock.now_ms()
            self._duration = (fix.timestamp - self.start_time - self._accumulated_paused_ms) / 1000.0
            self._emit(SessionEvent.DURATION_CHANGE, self._duration)

            heading = fix.heading
            previous = self._last_fix
            if previous is not None:
                increment = haversine_distance(previous.latitude, previous.longitude,
                                               fix.latitude, fix.longitude)
                if increment >= self.config.movement_threshold_m:
                    if heading is None:
                        heading = initial_bearing(previous.latitude, previous.longitude,
                                                  fix.latitude, fix.longitude)
                    self._accumulate_distance(increment)
                else:
                    logger.debug("Filtered out small movement: %.2fm", increment)

            if filtered.altitude is not None:
                self._update_elevation(filtered.altitude)

            self._positions.append(PositionRecord(
                latitude=filtered.latitude,
                longitude=filtered.longitude,
                accuracy=filtered.accuracy,
                timestamp=filtered.timestamp,
                elapsed_s=self._duration,
                altitude=filtered.altitude,
                origin=fix.origin,
            ))
            self._last_fix = fix

            if not fix.is_synthetic:
                self.sensor_fusion.update_gps_position(
                    filtered.latitude, filtered.longitude, heading=heading, timestamp=fix.timestamp,
                )
                self.gap_filler.process_position(
                    replace(fix, latitude=filtered.latitude, longitude=filtered.longitude),
                    self.clock.now_ms(),
                )
                self._last_real_fix_time = fix.timestamp

            if self.config.activity_type is not ActivityType.CYCLE:
                self._update_pace()
            return True

    def _accumulate_distance(self, increment):
        self._distance += increment
        self._emit(SessionEvent.DISTANCE_CHANGE, self._distance)

        self._check_goal()

        if self.config.activity_type is ActivityType.WALK:
            self._estimated_steps = self._steps_for_distance()
            self._emit(SessionEvent.STEPS_CHANGE, self._estimated_steps)

        self._check_splits()

    def _steps_for_distance(self):
        if self._distance <= 0:
            return 0
        return int(round(self._distance / self.config.stride_length_m))

    def _check_goal(self):
        goal = self.config.distance_goal_m
        if goal is None or self._goal_notified or self._distance < goal:
            return
        self._goal_notified = True
        logger.info("Distance goal reached: %.1fm (goal %.1fm)", self._distance, goal)
        self._emit(SessionEvent.GOAL_REACHED, {'distance': self._distance, 'goal': goal})

    def _check_splits(self):
        unit_meters = self.unit_meters
        completed = completed_units(self._distance, unit_meters)
        recorded = completed_units(self._last_split_distance, unit_meters)
        if completed <= recorded:
            return

        for unit_index in range(recorded + 1, completed + 1):
            previous_time = self._splits[-1].cumulative_duration if self._splits else 0.0
            split = Split(
                unit_index=unit_index,
                cumulative_duration=self._duration,
                pace=(self._duration - previous_time) / unit_meters,
                is_partial=False,
            )
            self._splits.append(split)
            logger.info("Recording split at %d %s with pace %.4f s/m",
                        unit_index, self.config.distance_unit.value, split.pace)

        self._last_split_distance = completed * unit_meters
        self._emit(SessionEvent.SPLIT_RECORDED, tuple(self._splits))

    def _update_elevation(self, altitude):
        if altitude is None or math.isnan(altitude):
            return
        elevation = self._elevation
        elevation.current = altitude
        if elevation.last_altitude is not None:
            diff = altitude - elevation.last_altitude
            if abs(diff) >= ELEVATION_NOISE_FLOOR_M:
                if diff > 0:
                    elevation.gain += diff
                else:
                    elevation.loss += -diff
        elevation.last_altitude = altitude
        self._emit(SessionEvent.ELEVATION_CHANGE, elevation.copy())

    def _update_pace(self):
        self._pace = calculate_pace(self._distance, self._duration, self.config.distance_unit)
        self._emit(SessionEvent.PACE_CHANGE, self._pace)

    def _current_speed_mps(self):
        """Speed over the last 10s of fixes, falling back to the session average."""
        if len(self._positions) < 2:
            return 0.0

        window_start = self._positions[-1].timestamp - SPEED_WINDOW_MS
        recent = [p for p in self._positions if p.timestamp >= window_start]

        if len(recent) >= 2:
            distance = 0.0
            for prev, curr in zip(recent, recent[1:]):
                if curr.timestamp > prev.timestamp:
                    distance += haversine_distance(prev.latitude, prev.longitude,
                                                   curr.latitude, curr.longitude)
            elapsed = (recent[-1].timestamp - recent[0].timestamp) / 1000.0
            if elapsed > 0 and distance > 0:
                return distance / elapsed

        if self._distance > 0 and self._duration > 0:
            return self._distance / self._duration
        return 0.0

    def _update_speed(self):
        raw = self._current_speed_mps()
        if raw > 0:
            self._smoothed_speed_mps = (1 - SPEED_SMOOTHING) * self._smoothed_speed_mps + SPEED_SMOOTHING * raw
        else:
            self._smoothed_speed_mps *= SPEED_DECAY
        self._current_speed = to_display_speed(self._smoothed_speed_mps, self.config.distance_unit)
        self._emit(SessionEvent.SPEED_CHANGE, self._current_speed)

    # ------------------------------------------------------------------
    # Motion
    # ------------------------------------------------------------------

    def process_motion(self, sample):
        """Feed a motion sample directly (for sources that push through the session)."""
        if self._state is not SessionState.TRACKING:
            return False
        return self.sensor_fusion.process_motion(sample)

    def _on_step_detected(self):
        with self.lock:
            if self._state is not SessionState.TRACKING:
                return
            # Detector steps are counted apart from the distance-based estimate in steps_change
            self._detected_steps += 1
            self._emit(SessionEvent.STEP_DETECTED, self._detected_steps)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def set_distance_goal(self, meters):
        with self.lock:
            self.config = self.config.with_changes(distance_goal_m=meters)
            self._goal_notified = False
            return self.config.distance_goal_m

    def clear_distance_goal(self):
        self.set_distance_goal(None)

    def reconfigure(self, **changes):
        """
        Apply configuration changes mid-session.

        Switching the filter mode replaces the filter (it starts from the next
        fix); switching the activity retunes the Kalman process noise.
        """
        with self.lock:
            previous = self.config
            self.config = previous.with_changes(**changes)

            if self.config.filter_mode is not previous.filter_mode or \
                    self.config.weighted_window != previous.weighted_window:
                self.position_filter = self._build_filter()
            elif self.config.activity_type is not previous.activity_type:
                self.position_filter.set_activity(self.config.activity_type)

            if self.config.step_length_m != previous.step_length_m:
                self.sensor_fusion.dead_reckoning.set_step_length(self.config.step_length_m)
            if self.config.distance_unit is not previous.distance_unit:
                self._current_speed = Speed(self._current_speed.value, self.config.distance_unit.speed_label)
            if self.config.distance_goal_m != previous.distance_goal_m:
                self._goal_notified = False

            logger.info("Configuration updated: %s", ", ".join(sorted(changes)))
            return self.config

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def snapshot(self):
        with self.lock:
            return SessionSnapshot(
                distance_m=self._distance,
                duration_s=self._duration,
                pace=self._pace,
                timestamp=self.clock.now_ms(),
                splits=list(self._splits),
                elevation=self._elevation.copy(),
                activity_type=self.config.activity_type,
                estimated_total_steps=self._estimated_steps,
                average_speed=self._current_speed if self.config.activity_type is ActivityType.CYCLE else None,
            )

    def restore_tracking(self, snapshot):
        """Resume a persisted session that was running; time since the snapshot counts as tracked."""
        return self._restore(snapshot, paused=False)

    def restore_tracking_paused(self, snapshot):
        """Resume a persisted session that was paused; it stays paused."""
        return self._restore(snapshot, paused=True)

    def _restore(self, snapshot, paused):
        if isinstance(snapshot, Mapping):
            snapshot = SessionSnapshot.from_dict(snapshot)

        with self.lock:
            if self.is_tracking:
                logger.warning("Cannot restore into a session that is %s", self._state.value)
                return False

            self._reset_accumulators()
            if snapshot.activity_type is not self.config.activity_type:
                self.config = self.config.with_changes(activity_type=snapshot.activity_type)
                self.position_filter = self._build_filter()
            self._reset_components()

            now = self.clock.now_ms()
            self._distance = snapshot.distance_m
            self._duration = snapshot.duration_s
            self._pace = snapshot.pace
            self._splits = list(snapshot.splits)
            self._estimated_steps = snapshot.estimated_total_steps
            self._current_speed = snapshot.average_speed or Speed(0.0, self.config.distance_unit.speed_label)
            self._elevation = ElevationState(
                current=snapshot.elevation.current,
                gain=snapshot.elevation.gain,
                loss=snapshot.elevation.loss,
                last_altitude=snapshot.elevation.current,
            )
            full_splits = [s for s in self._splits if not s.is_partial]
            if full_splits:
                self._last_split_distance = full_splits[-1].unit_index * self.unit_meters

            if not paused:
                self._duration += (now - snapshot.timestamp) / 1000.0
            self.start_time = now - self._duration * 1000.0
            self._generation += 1

            if paused:
                self._state = SessionState.PAUSED
                self.last_pause_time = now
            else:
                self._state = SessionState.TRACKING
                self.sensor_fusion.initialize(start_tracking=True)
                if not self._activate():
                    return False

            logger.info("Session restored (%s): %.1fm, %.0fs",
                        self._state.value, self._distance, self._duration)
            self._emit(SessionEvent.DISTANCE_CHANGE, self._distance)
            self._emit(SessionEvent.DURATION_CHANGE, self._duration)
            self._emit(SessionEvent.PACE_CHANGE, self._pace)
            self._emit(SessionEvent.SPLIT_RECORDED, tuple(self._splits))
            self._emit(SessionEvent.ELEVATION_CHANGE, self._elevation.copy())
            self._emit(SessionEvent.STEPS_CHANGE, self._estimated_steps)
            self._emit(SessionEvent.SPEED_CHANGE, self._current_speed)
            self._emit(SessionEvent.STATUS_CHANGE, self._status())
            return True
