"""
LinkBand sensor registry
========================

Static metadata for every sensor kind the headband reports over BLE, and the
hardware parameters needed to turn raw counts into physical units.

Frame Layout:
-------------
Every notification (except battery) starts with a 4-byte little-endian tick
counter, followed by fixed-width samples:

    EEG            179 bytes = 4 header + 25 samples x 7 bytes
    PPG            172 bytes = 4 header + 28 samples x 6 bytes
    Accelerometer   10 bytes = 4 header +  1 sample  x 6 bytes
    Battery          1 byte  (percentage, no header)

The device clock runs at 32.768 kHz; ``ticks / 32.768`` gives milliseconds.
"""

import enum
from dataclasses import dataclass
from typing import Dict, Optional, Tuple


class SensorType(enum.Enum):
    EEG = "EEG"
    PPG = "PPG"
    ACCELEROMETER = "Accelerometer"
    BATTERY = "Battery"

    @classmethod
    def from_name(cls, name: str) -> "SensorType":
        """Look up a sensor type by value, member name or file tag (case-insensitive)."""
        key = name.strip().lower()
        for member in cls:
            if key in (member.value.lower(), member.name.lower(), SENSORS[member].tag):
                return member
        raise ValueError(f"Unknown sensor type: {name!r}")


HEADER_SIZE = 4  # Little-endian uint32 tick counter at the start of every frame

# Names of the parallel arrays in the aggregate JSON document, in output order
AGGREGATE_FIELDS: Tuple[str, ...] = (
    "timestamp",
    "eegChannel1",
    "eegChannel2",
    "eegLeadOff",
    "ppgRed",
    "ppgIr",
    "accelX",
    "accelY",
    "accelZ",
)


@dataclass(frozen=True)
class SensorSpec:
    sensor_type: SensorType
    tag: str
    frame_length: Optional[int]  # None: variable length (battery)
    sample_size: int
    n_samples: int
    csv_header: Tuple[str, ...]
    aggregate_fields: Tuple[str, ...]

    @property
    def csv_prefix(self) -> str:
        return f"{self.tag}_data"


SENSORS: Dict[SensorType, SensorSpec] = {
    SensorType.EEG: SensorSpec(
        sensor_type=SensorType.EEG,
        tag="eeg",
        frame_length=179,
        sample_size=7,
        n_samples=25,
        csv_header=("timestamp", "ch1Raw", "ch2Raw", "ch1uV", "ch2uV", "leadOff"),
        aggregate_fields=("eegChannel1", "eegChannel2", "eegLeadOff"),
    ),
    SensorType.PPG: SensorSpec(
        sensor_type=SensorType.PPG,
        tag="ppg",
        frame_length=172,
        sample_size=6,
        n_samples=28,
        csv_header=("timestamp", "red", "ir"),
        aggregate_fields=("ppgRed", "ppgIr"),
    ),
    SensorType.ACCELEROMETER: SensorSpec(
        sensor_type=SensorType.ACCELEROMETER,
        tag="accel",
        frame_length=10,  # minimum; longer frames are accepted
        sample_size=6,
        n_samples=1,
        csv_header=("timestamp", "x", "y", "z"),
        aggregate_fields=("accelX", "accelY", "accelZ"),
    ),
    SensorType.BATTERY: SensorSpec(
        sensor_type=SensorType.BATTERY,
        tag="battery",
        frame_length=None,
        sample_size=1,
        n_samples=1,
        csv_header=("timestamp", "level"),
        aggregate_fields=(),
    ),
}

# Sensors recorded when the caller does not choose
DEFAULT_RECORDING_SENSORS = frozenset(
    {SensorType.EEG, SensorType.PPG, SensorType.ACCELEROMETER}
)


@dataclass(frozen=True)
class SensorConfiguration:
    """Sampling rates and conversion constants for one LinkBand hardware setup."""

    eeg_sample_rate: float = 250.0
    ppg_sample_rate: float = 50.0
    accelerometer_sample_rate: float = 30.0

    # EEG front end: uV = raw * vref / gain / resolution * 1e6
    eeg_voltage_reference: float = 4.033
    eeg_gain: float = 12.0
    eeg_resolution: float = 8388607.0  # 2^23 - 1
    microvolt_multiplier: float = 1e6

    # Header ticks -> seconds
    timestamp_divisor: float = 32.768
    milliseconds_to_seconds: float = 1000.0

    eeg_valid_range: Tuple[float, float] = (-200.0, 200.0)
    ppg_max_value: int = 16777215  # 2^24 - 1

    @property
    def eeg_scale(self) -> float:
        """Microvolts per raw EEG count."""
        return (
            self.eeg_voltage_reference
            / self.eeg_gain
            / self.eeg_resolution
            * self.microvolt_multiplier
        )

    def ticks_to_seconds(self, ticks: int) -> float:
        return ticks / self.timestamp_divisor / self.milliseconds_to_seconds

    def sample_rate(self, sensor_type: SensorType) -> float:
        if sensor_type is SensorType.EEG:
            return self.eeg_sample_rate
        if sensor_type is SensorType.PPG:
            return self.ppg_sample_rate
        if sensor_type is SensorType.ACCELEROMETER:
            return self.accelerometer_sample_rate
        raise ValueError(f"{sensor_type.value} has no fixed sample rate")


DEFAULT_CONFIG = SensorConfiguration()
HIGH_PERFORMANCE = SensorConfiguration(
    eeg_sample_rate=500.0, ppg_sample_rate=100.0, accelerometer_sample_rate=100.0
)
LOW_POWER = SensorConfiguration(
    eeg_sample_rate=125.0, ppg_sample_rate=25.0, accelerometer_sample_rate=10.0
)

PRESETS: Dict[str, SensorConfiguration] = {
    "default": DEFAULT_CONFIG,
    "high_performance": HIGH_PERFORMANCE,
    "low_power": LOW_POWER,
}
