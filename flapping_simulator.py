#!/usr/bin/env python3
"""
Flapping Simulator
Test aid that injects a known-bad target into a check cycle so alerting,
diagnosis and remediation paths can be exercised on a healthy network.

Modes:
- time: inject on even-numbered fixed-width epoch buckets (default 300s)
- random: independent trial per cycle with a fixed probability (percent)
- pattern: minutes 0-4, 15-19, 30-34 and 45-49 of every hour
- persistent: toggles normal/failure whenever the 5-minute bucket changes,
  remembering the last state in a small state file (``state:minute``)
"""

import logging
import random
import time
from datetime import datetime
from pathlib import Path

from models import FlappingMode, FlappingState

logger = logging.getLogger(__name__)

BUCKET_MINUTES = 5
PATTERN_WINDOWS = ((0, 4), (15, 19), (30, 34), (45, 49))


def _as_datetime(now):
    if now is None:
        return datetime.now()
    if isinstance(now, (int, float)):
        return datetime.fromtimestamp(now)
    return now


class TimeWindowStrategy:
    name = "time"
    label = "⏰ [TIME-BASED TEST]"

    def __init__(self, interval=300):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.interval = int(interval)

    def should_inject_failure(self, now=None):
        if now is None:
            epoch = int(time.time())
        elif isinstance(now, (int, float)):
            epoch = int(now)
        else:
            epoch = int(now.timestamp())
        return (epoch // self.interval) % 2 == 0


class RandomStrategy:
    name = "random"
    label = "🎲 [RANDOM TEST]"

    def __init__(self, probability=35, rng=None):
        if not 0 <= probability <= 100:
            raise ValueError("probability must be between 0 and 100")
        self.probability = probability
        self.rng = rng or random.Random()

    def should_inject_failure(self, now=None):
        return self.rng.randrange(100) < self.probability


class PatternStrategy:
    name = "pattern"
    label = "📊 [PATTERN TEST]"

    def should_inject_failure(self, now=None):
        minute = _as_datetime(now).minute
        return any(start <= minute <= end for start, end in PATTERN_WINDOWS)


class FlappingStateStore:
    """File-backed store for the persistent strategy's state"""

    def __init__(self, path):
        self.path = Path(path)

    def get(self):
        """Return the stored state; a missing or corrupt file reads as normal:0"""
        try:
            raw = self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return FlappingState()
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Cannot read flapping state {self.path}: {e}")
            return FlappingState()
        try:
            state_text, minute_text = raw.split(":", 1)
            state = FlappingMode(state_text.strip().lower())
            minute = int(minute_text.strip())
        except ValueError:
            logger.warning(f"Corrupt flapping state {raw!r}, defaulting to normal")
            return FlappingState()
        return FlappingState(state=state, last_minute=minute)

    def set(self, state):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(state.serialize() + "\n", encoding="utf-8")


class PersistentStrategy:
    name = "persistent"
    label = "💾 [PERSISTENT TEST]"

    def __init__(self, store):
        self.store = store

    def should_inject_failure(self, now=None):
        minute = _as_datetime(now).minute
        last = self.store.get()

        if minute // BUCKET_MINUTES == last.last_bucket:
            return last.state is FlappingMode.FAILURE

        if last.state is FlappingMode.NORMAL:
            self.store.set(FlappingState(FlappingMode.FAILURE, minute))
            return True
        self.store.set(FlappingState(FlappingMode.NORMAL, minute))
        return False


def build_strategy(config, rng=None, store=None):
    """Create the strategy selected by config['flapping_mode']"""
    mode = config["flapping_mode"]
    if mode == "time":
        return TimeWindowStrategy(config["flapping_interval"])
    if mode == "random":
        return RandomStrategy(config["failure_probability"], rng=rng)
    if mode == "pattern":
        return PatternStrategy()
    if mode == "persistent":
        return PersistentStrategy(store or FlappingStateStore(config["flapping_state_file"]))
    raise ValueError(f"Unknown flapping mode: {mode}")


def inject_targets(targets, strategy, synthetic_target="169.254.255.255", now=None):
    """Return a new target list, with the synthetic target appended when the strategy fires"""
    cycle_targets = list(targets)
    if strategy.should_inject_failure(now):
        cycle_targets.append(synthetic_target)
    return cycle_targets
