"""
Live post-processing helpers for decoded readings.

- MotionFilter: optional gravity removal for accelerometer readings.
- BatchCollector: groups a reading stream into fixed-size or fixed-duration
  batches for downstream analysis.
"""

import enum
from typing import Generic, List, Optional, TypeVar

from .decode import AccelerometerReading, Reading


class AccelerometerMode(enum.Enum):
    RAW = "raw"  # readings unchanged
    MOTION = "motion"  # gravity component removed


GRAVITY_FILTER_FACTOR = 0.1


class MotionFilter:
    """
    Low-pass gravity estimate subtracted from accelerometer readings.

    In RAW mode readings pass through untouched and the estimate is not
    updated. In MOTION mode the first reading seeds the estimate; each later
    reading moves it by ``factor`` towards the new sample, and the returned
    reading holds the linear acceleration (sample minus gravity), truncated
    to integers.
    """

    def __init__(
        self,
        mode: AccelerometerMode = AccelerometerMode.RAW,
        factor: float = GRAVITY_FILTER_FACTOR,
    ):
        if not 0.0 < factor <= 1.0:
            raise ValueError("factor must be in (0, 1]")
        self.mode = mode
        self.factor = factor
        self._gravity: Optional[List[float]] = None

    @property
    def gravity(self) -> Optional[tuple]:
        return tuple(self._gravity) if self._gravity is not None else None

    def reset(self) -> None:
        self._gravity = None

    def apply(self, reading: AccelerometerReading) -> AccelerometerReading:
        if self.mode is AccelerometerMode.RAW:
            return reading

        sample = (reading.x, reading.y, reading.z)
        if self._gravity is None:
            self._gravity = [float(v) for v in sample]
        else:
            self._gravity = [
                g * (1.0 - self.factor) + v * self.factor
                for g, v in zip(self._gravity, sample)
            ]

        x, y, z = (int(v - g) for v, g in zip(sample, self._gravity))
        return AccelerometerReading(x=x, y=y, z=z, timestamp=reading.timestamp)


T = TypeVar("T", bound=Reading)


class BatchCollector(Generic[T]):
    """
    Accumulate readings and release them in batches.

    Exactly one of ``sample_count`` (emit every N readings) or
    ``time_interval`` (emit once the newest reading is at least this many
    seconds after the first reading of the batch) must be given.
    """

    def __init__(
        self,
        sample_count: Optional[int] = None,
        time_interval: Optional[float] = None,
    ):
        if (sample_count is None) == (time_interval is None):
            raise ValueError("give exactly one of sample_count or time_interval")
        if sample_count is not None and sample_count < 1:
            raise ValueError("sample_count must be at least 1")
        if time_interval is not None and time_interval <= 0:
            raise ValueError("time_interval must be positive")

        self.sample_count = sample_count
        self.time_interval = time_interval
        self._buffer: List[T] = []
        self._batch_start: Optional[float] = None

    @property
    def pending(self) -> int:
        return len(self._buffer)

    def reset(self) -> None:
        self._buffer = []
        self._batch_start = None

    def add(self, reading: T) -> Optional[List[T]]:
        """Add one reading; return a completed batch, or None."""
        if self.sample_count is not None:
            self._buffer.append(reading)
            if len(self._buffer) < self.sample_count:
                return None
            batch = self._buffer[: self.sample_count]
            self._buffer = self._buffer[self.sample_count :]
            return batch

        if self._batch_start is None:
            self._batch_start = reading.timestamp
        self._buffer.append(reading)

        if reading.timestamp - self._batch_start >= self.time_interval:
            batch, self._buffer = self._buffer, []
            self._batch_start = reading.timestamp
            return batch
        return None

    def extend(self, readings) -> List[List[T]]:
        """Add many readings; return every batch completed along the way."""
        batches = []
        for reading in readings:
            batch = self.add(reading)
            if batch is not None:
                batches.append(batch)
        return batches
