"""OpenLinkBand: Minimal utilities for LinkBand bio-sensing headbands."""

from .sensors import SensorType, SensorConfiguration
from .decode import (
    EEGReading,
    PPGReading,
    AccelerometerReading,
    BatteryReading,
    parse_packet,
    parse_message,
    decode_rawdata,
)
from .validate import validate_reading
from .record import RecordingSession, RecordingListener, RecordingState
from .process import AccelerometerMode, BatchCollector, MotionFilter
from .find import find_devices
from .stream import stream, record_raw
from .convert import convert

__version__ = "0.1.0"
