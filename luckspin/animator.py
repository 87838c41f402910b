"""
Spin animation state machine.

Angles are in degrees. Sector 0 starts at 0 degrees (pointing right) and
sectors run clockwise, so the top of the wheel sits at 270. The wheel's
rotation only ever grows: every spin starts from the resting value of the
previous one.
"""
import logging
import random
import threading
from enum import Enum

from luckspin.errors import InvalidConfiguration, ProgrammerError

logger = logging.getLogger(__name__)

DEFAULT_POINTER_ANGLE = 270.0
DEFAULT_EXTRA_TURNS = 5
DEFAULT_JITTER_FRACTION = 0.4
DEFAULT_DURATION = 5.0


class SpinPhase(str, Enum):
    IDLE = 'IDLE'
    SPINNING = 'SPINNING'


def normalize_angle(angle):
    """Fold any angle into [0, 360)."""
    return angle % 360.0


def ease_out_cubic(t):
    t = min(max(t, 0.0), 1.0)
    return 1 - (1 - t) ** 3


def sector_geometry(sector_count):
    """Start, end and center angle of each sector. Width ignores weight."""
    if sector_count < 1:
        return []
    width = 360.0 / sector_count
    return [
        {
            'index': i,
            'start': i * width,
            'end': (i + 1) * width,
            'center': i * width + width / 2,
        }
        for i in range(sector_count)
    ]


def landing_offset(rotation, winning_index, sector_count, pointer_angle=DEFAULT_POINTER_ANGLE):
    """
    Signed distance in degrees between where the winning sector's center
    ended up and the pointer, in (-180, 180].
    """
    width = 360.0 / sector_count
    center = winning_index * width + width / 2
    diff = normalize_angle(rotation - (pointer_angle - center))
    return diff - 360.0 if diff > 180.0 else diff


def _timer_scheduler(delay, callback):
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()
    return timer


class SpinTransition:
    """One timed transition from start to target. Completes exactly once."""

    def __init__(self, start, target, duration, winning_index, jitter):
        self.start = start
        self.target = target
        self.duration = duration
        self.winning_index = winning_index
        self.jitter = jitter
        self.done = threading.Event()

    @property
    def completed(self):
        return self.done.is_set()

    def rotation_at(self, elapsed):
        """Rotation after `elapsed` seconds. Monotonic and never past target."""
        if self.duration <= 0:
            return self.target
        progress = ease_out_cubic(elapsed / self.duration)
        return min(self.start + (self.target - self.start) * progress, self.target)

    def wait(self, timeout=None):
        return self.done.wait(timeout)

    def to_dict(self):
        return {
            'winning_index': self.winning_index,
            'start_rotation': self.start,
            'target_rotation': self.target,
            'duration': self.duration,
        }


class SpinAnimator:
    """
    Owns the wheel's rotation. `spin` computes a landing rotation for an
    already-decided winner and schedules a single completion event.

    `scheduler(delay, callback)` runs callback once after delay seconds; the
    default uses a daemon threading.Timer.
    """

    def __init__(self, pointer_angle=DEFAULT_POINTER_ANGLE, extra_turns=DEFAULT_EXTRA_TURNS,
                 jitter_fraction=DEFAULT_JITTER_FRACTION, duration=DEFAULT_DURATION,
                 rng=None, scheduler=None):
        self.rng = rng or random
        self.scheduler = scheduler or _timer_scheduler

        self.rotation = 0.0
        self.phase = SpinPhase.IDLE
        self.transition = None
        self._on_complete = None
        self._lock = threading.Lock()
        self.configure(pointer_angle, extra_turns, jitter_fraction, duration)

    def configure(self, pointer_angle, extra_turns, jitter_fraction, duration):
        """
        Replace the spin settings. All values are checked before any is
        applied; changes are refused while a spin is in flight.
        """
        if int(extra_turns) < 1:
            raise ValueError("extra_turns must be at least 1")
        if not 0 <= jitter_fraction < 0.5:
            raise ValueError("jitter_fraction must be in [0, 0.5)")
        if duration < 0:
            raise ValueError("duration must not be negative")

        with self._lock:
            if self.phase is SpinPhase.SPINNING:
                raise InvalidConfiguration("Cannot change spin settings while the wheel is spinning")
            self.pointer_angle = float(pointer_angle)
            self.extra_turns = int(extra_turns)
            self.jitter_fraction = float(jitter_fraction)
            self.duration = float(duration)

    @property
    def is_spinning(self):
        return self.phase is SpinPhase.SPINNING

    def jitter_bound(self, sector_count):
        return 360.0 / sector_count * self.jitter_fraction

    def target_rotation(self, winning_index, sector_count, jitter=0.0):
        """Absolute rotation that parks `winning_index` under the pointer."""
        width = 360.0 / sector_count
        target_center = winning_index * width + width / 2
        base_delta = normalize_angle(self.pointer_angle - target_center)
        forward = normalize_angle(base_delta - normalize_angle(self.rotation))
        return self.rotation + self.extra_turns * 360.0 + forward + jitter

    def spin(self, winning_index, sector_count, on_complete=None):
        """
        Start spinning toward `winning_index`. Calling this while a spin is in
        flight returns the in-flight transition and changes nothing.
        """
        if isinstance(sector_count, bool) or not isinstance(sector_count, int) or sector_count < 1:
            raise ProgrammerError(f"sector_count must be a positive integer, got {sector_count!r}")
        if isinstance(winning_index, bool) or not isinstance(winning_index, int) \
                or not 0 <= winning_index < sector_count:
            raise ProgrammerError(f"winning_index {winning_index!r} out of range for {sector_count} sectors")

        with self._lock:
            if self.phase is SpinPhase.SPINNING:
                logger.debug(f"🔒 Spin ignored - already spinning toward {self.transition.target:.1f}")
                return self.transition

            bound = self.jitter_bound(sector_count)
            jitter = self.rng.uniform(-bound, bound)
            target = self.target_rotation(winning_index, sector_count, jitter)

            self.transition = SpinTransition(self.rotation, target, self.duration, winning_index, jitter)
            self._on_complete = on_complete
            self.phase = SpinPhase.SPINNING
            transition = self.transition

        logger.info(f"🎡 Spinning to sector {winning_index}/{sector_count}: "
                    f"{transition.start:.1f}° -> {transition.target:.1f}° over {self.duration}s")
        self.scheduler(self.duration, self._complete)
        return transition

    def _complete(self):
        with self._lock:
            if self.phase is not SpinPhase.SPINNING:
                return
            transition = self.transition
            self.rotation = transition.target
            self.phase = SpinPhase.IDLE
            callback, self._on_complete = self._on_complete, None

        transition.done.set()
        logger.info(f"✅ Wheel settled at {self.rotation:.1f}° (sector {transition.winning_index})")
        if callback:
            callback()

    def current_rotation(self, elapsed=None):
        """Rotation to render now; `elapsed` is seconds since the spin started."""
        if self.phase is SpinPhase.SPINNING and elapsed is not None:
            return self.transition.rotation_at(elapsed)
        return self.rotation

    def to_dict(self):
        return {
            'rotation': self.rotation,
            'phase': self.phase.value,
            'transition': self.transition.to_dict() if self.transition else None,
        }
