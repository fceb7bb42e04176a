"""Range checks for decoded readings. Pure predicates; never raise."""

from .decode import (
    AccelerometerReading,
    BatteryReading,
    EEGReading,
    PPGReading,
    Reading,
)
from .sensors import DEFAULT_CONFIG, SensorConfiguration


def validate_eeg_reading(
    reading: EEGReading, config: SensorConfiguration = DEFAULT_CONFIG
) -> bool:
    """
    True if both channels lie within the configured range (default +/-200 uV).

    Values beyond the range are amplifier saturation or motion artifacts
    rather than cortical signal.
    """
    low, high = config.eeg_valid_range
    return low <= reading.channel1 <= high and low <= reading.channel2 <= high


def validate_ppg_reading(reading: PPGReading) -> bool:
    return reading.red >= 0 and reading.ir >= 0


def validate_accelerometer_reading(reading: AccelerometerReading) -> bool:
    # Every int16 triple is a physically meaningful acceleration.
    return True


def validate_battery_reading(reading: BatteryReading) -> bool:
    return 0 <= reading.level <= 100


def validate_reading(
    reading: Reading, config: SensorConfiguration = DEFAULT_CONFIG
) -> bool:
    """Dispatch to the validator matching the reading's type."""
    if isinstance(reading, EEGReading):
        return validate_eeg_reading(reading, config)
    if isinstance(reading, PPGReading):
        return validate_ppg_reading(reading)
    if isinstance(reading, AccelerometerReading):
        return validate_accelerometer_reading(reading)
    if isinstance(reading, BatteryReading):
        return validate_battery_reading(reading)
    return False
