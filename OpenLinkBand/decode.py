"""
LinkBand BLE Frame Decoder
==========================

Turns raw notification payloads into typed sensor readings.

Frame Structure:
----------------
Each BLE notification carries exactly one FRAME for one sensor kind. The kind
is known from the characteristic the notification arrived on, not from the
payload itself:

FRAME (BLE notification)
  ├─ Header: 4 bytes, little-endian uint32 device tick counter
  └─ Samples: N fixed-width records, fields big-endian
       ├─ EEG (7 bytes):  [lead-off][ch1 int24][ch2 int24]
       ├─ PPG (6 bytes):  [red uint24][ir uint24]
       └─ ACC (6 bytes):  [-][x int8][-][y int8][-][z int8]

Battery notifications have no header: the first byte is the charge level.

Timestamps:
-----------
The header tick counter comes from a 32.768 kHz device clock. Every sample in
a frame is stamped ``header_seconds + sample_index / sampling_rate``, so
timestamps never decrease within one frame.

A frame is either decoded completely or rejected: a length that does not
match the sensor's layout raises LengthMismatchError and no readings are
returned. All functions here are pure and can be called from any thread.
"""

import struct
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple, Union

import numpy as np
import pandas as pd

from .errors import EmptyInputError, LengthMismatchError, ParseError
from .linkband import LinkBand
from .sensors import (
    DEFAULT_CONFIG,
    HEADER_SIZE,
    SENSORS,
    SensorConfiguration,
    SensorType,
)


# ============================================================================
# Readings
# ============================================================================


@dataclass(frozen=True)
class EEGReading:
    channel1: float  # uV
    channel2: float  # uV
    ch1_raw: int
    ch2_raw: int
    lead_off: bool
    timestamp: float


@dataclass(frozen=True)
class PPGReading:
    red: int
    ir: int
    timestamp: float


@dataclass(frozen=True)
class AccelerometerReading:
    x: int
    y: int
    z: int
    timestamp: float


@dataclass(frozen=True)
class BatteryReading:
    level: int  # 0-100 %
    timestamp: float


Reading = Union[EEGReading, PPGReading, AccelerometerReading, BatteryReading]

_READING_TYPES = {
    EEGReading: SensorType.EEG,
    PPGReading: SensorType.PPG,
    AccelerometerReading: SensorType.ACCELEROMETER,
    BatteryReading: SensorType.BATTERY,
}

BytesLike = Union[bytes, bytearray, memoryview]


def sensor_type_of(reading: Reading) -> SensorType:
    """Return the sensor kind a reading belongs to."""
    try:
        return _READING_TYPES[type(reading)]
    except KeyError:
        raise TypeError(f"Not a sensor reading: {reading!r}") from None


def reading_to_row(reading: Reading) -> Tuple[Union[int, float], ...]:
    """
    Flatten a reading into the column order of its CSV header.

    EEG:            timestamp, ch1Raw, ch2Raw, ch1uV, ch2uV, leadOff (1/0)
    PPG:            timestamp, red, ir
    Accelerometer:  timestamp, x, y, z
    Battery:        timestamp, level
    """
    if isinstance(reading, EEGReading):
        return (
            reading.timestamp,
            reading.ch1_raw,
            reading.ch2_raw,
            reading.channel1,
            reading.channel2,
            1 if reading.lead_off else 0,
        )
    if isinstance(reading, PPGReading):
        return (reading.timestamp, reading.red, reading.ir)
    if isinstance(reading, AccelerometerReading):
        return (reading.timestamp, reading.x, reading.y, reading.z)
    if isinstance(reading, BatteryReading):
        return (reading.timestamp, reading.level)
    raise TypeError(f"Not a sensor reading: {reading!r}")


# ============================================================================
# Frame decoding
# ============================================================================


def _header_time(data: bytes, config: SensorConfiguration) -> float:
    """Decode the 4-byte little-endian tick header into seconds."""
    ticks = struct.unpack_from("<I", data, 0)[0]
    return config.ticks_to_seconds(ticks)


def _check_length(data: bytes, sensor_type: SensorType) -> None:
    expected = SENSORS[sensor_type].frame_length
    if len(data) != expected:
        raise LengthMismatchError(expected, len(data), sensor_type.value)


def _samples(data: bytes, sensor_type: SensorType) -> np.ndarray:
    """View the sample section of a frame as an (n_samples, sample_size) int32 array."""
    spec = SENSORS[sensor_type]
    raw = np.frombuffer(data, dtype=np.uint8, offset=HEADER_SIZE)
    return raw.reshape(spec.n_samples, spec.sample_size).astype(np.int32)


def _uint24_be(columns: np.ndarray) -> np.ndarray:
    """Combine three big-endian byte columns into unsigned 24-bit integers."""
    return (columns[:, 0] << 16) | (columns[:, 1] << 8) | columns[:, 2]


def _int24_be(columns: np.ndarray) -> np.ndarray:
    """Combine three big-endian byte columns into two's-complement 24-bit integers."""
    values = _uint24_be(columns)
    return np.where(values & 0x800000, values - 0x1000000, values)


def _sample_times(
    base_time: float, n_samples: int, sampling_rate: float
) -> List[float]:
    return [base_time + index / sampling_rate for index in range(n_samples)]


def parse_eeg_data(
    data: BytesLike, config: SensorConfiguration = DEFAULT_CONFIG
) -> List[EEGReading]:
    """
    Decode one 179-byte EEG frame (4-byte header + 25 samples x 7 bytes).

    Sample layout (big-endian):
        byte 0     lead-off flag (nonzero = electrode contact lost)
        bytes 1-3  channel 1, signed 24-bit
        bytes 4-6  channel 2, signed 24-bit

    Raw counts are kept in ``ch1_raw`` / ``ch2_raw``; ``channel1`` /
    ``channel2`` carry the same values converted to microvolts.

    Raises:
    -------
    LengthMismatchError : if the frame is not exactly 179 bytes
    """
    data = bytes(data)
    _check_length(data, SensorType.EEG)

    base_time = _header_time(data, config)
    samples = _samples(data, SensorType.EEG)

    lead_off = (samples[:, 0] != 0).tolist()
    ch1_raw = _int24_be(samples[:, 1:4]).tolist()
    ch2_raw = _int24_be(samples[:, 4:7]).tolist()
    times = _sample_times(base_time, len(samples), config.eeg_sample_rate)

    scale = config.eeg_scale
    return [
        EEGReading(
            channel1=ch1 * scale,
            channel2=ch2 * scale,
            ch1_raw=ch1,
            ch2_raw=ch2,
            lead_off=off,
            timestamp=ts,
        )
        for ch1, ch2, off, ts in zip(ch1_raw, ch2_raw, lead_off, times)
    ]


def parse_ppg_data(
    data: BytesLike, config: SensorConfiguration = DEFAULT_CONFIG
) -> List[PPGReading]:
    """
    Decode one 172-byte PPG frame (4-byte header + 28 samples x 6 bytes).

    Each sample holds two unsigned 24-bit big-endian values: red LED, then IR.

    Raises:
    -------
    LengthMismatchError : if the frame is not exactly 172 bytes
    """
    data = bytes(data)
    _check_length(data, SensorType.PPG)

    base_time = _header_time(data, config)
    samples = _samples(data, SensorType.PPG)

    red = _uint24_be(samples[:, 0:3]).tolist()
    ir = _uint24_be(samples[:, 3:6]).tolist()
    times = _sample_times(base_time, len(samples), config.ppg_sample_rate)

    return [
        PPGReading(red=r, ir=i, timestamp=ts) for r, i, ts in zip(red, ir, times)
    ]


def parse_accelerometer_data(
    data: BytesLike, config: SensorConfiguration = DEFAULT_CONFIG
) -> List[AccelerometerReading]:
    """
    Decode an accelerometer frame into a single reading.

    The device fills only the odd bytes of the 6-byte sample window: x, y and
    z are the signed bytes at frame offsets 5, 7 and 9. Offsets 4, 6 and 8 and
    anything past byte 9 are ignored.

    Raises:
    -------
    LengthMismatchError : if the frame is shorter than 10 bytes
    """
    data = bytes(data)
    minimum = SENSORS[SensorType.ACCELEROMETER].frame_length
    if len(data) < minimum:
        raise LengthMismatchError(minimum, len(data), SensorType.ACCELEROMETER.value)

    base_time = _header_time(data, config)
    x, y, z = struct.unpack_from("xbxbxb", data, HEADER_SIZE)

    return [AccelerometerReading(x=x, y=y, z=z, timestamp=base_time)]


def parse_battery_data(
    data: BytesLike, timestamp: Optional[float] = None
) -> BatteryReading:
    """
    Decode a battery notification: the first byte is the charge percentage.

    Battery notifications carry no device timestamp; ``timestamp`` defaults
    to the current wall-clock time.

    Raises:
    -------
    EmptyInputError : if the payload is empty
    """
    if len(data) == 0:
        raise EmptyInputError(SensorType.BATTERY.value)
    if timestamp is None:
        timestamp = time.time()
    return BatteryReading(level=data[0], timestamp=timestamp)


def parse_packet(
    sensor_type: SensorType,
    data: BytesLike,
    config: SensorConfiguration = DEFAULT_CONFIG,
) -> List[Reading]:
    """
    Decode one notification payload for the given sensor kind.

    Always returns a list; battery payloads yield a single reading.
    """
    if sensor_type is SensorType.EEG:
        return parse_eeg_data(data, config)
    if sensor_type is SensorType.PPG:
        return parse_ppg_data(data, config)
    if sensor_type is SensorType.ACCELEROMETER:
        return parse_accelerometer_data(data, config)
    if sensor_type is SensorType.BATTERY:
        return [parse_battery_data(data)]
    raise ValueError(f"Unsupported sensor type: {sensor_type!r}")


# ============================================================================
# Raw log decoding
# ============================================================================


def parse_message(
    message: str, config: SensorConfiguration = DEFAULT_CONFIG
) -> Tuple[Optional[SensorType], List[Reading]]:
    """
    Decode one line of a raw notification log.

    Parameters:
    -----------
    message : str
        Tab-separated string: ISO 8601 timestamp, characteristic UUID,
        hex-encoded payload (as written by ``OpenLinkBand.record``)

    Returns:
    --------
    tuple : (sensor_type, readings)
        ``(None, [])`` for malformed lines or characteristics that do not
        carry sensor data.

    Raises:
    -------
    ParseError : if the payload does not match its sensor's frame layout
    """
    try:
        ts, uuid, hexstring = message.strip().split("\t", 2)
        message_time = datetime.fromisoformat(ts.replace("Z", "+00:00"))
        payload = bytes.fromhex(hexstring.strip())
    except (ValueError, AttributeError):
        return None, []

    sensor_type = LinkBand.SENSOR_CHARACTERISTICS.get(uuid.strip().lower())
    if sensor_type is None:
        return None, []

    if sensor_type is SensorType.BATTERY:
        return sensor_type, [parse_battery_data(payload, message_time.timestamp())]
    return sensor_type, parse_packet(sensor_type, payload, config)


def decode_rawdata(
    messages: Iterable[str],
    config: SensorConfiguration = DEFAULT_CONFIG,
    verbose: bool = False,
) -> Dict[str, pd.DataFrame]:
    """
    Decode a raw notification log and return one DataFrame per sensor kind.

    Frames that fail to decode are dropped (and reported when ``verbose``).

    Returns:
    --------
    Dict[str, pd.DataFrame] : keyed by sensor tag ("eeg", "ppg", "accel",
        "battery"); columns follow the CSV headers, e.g.
        ['timestamp', 'ch1Raw', 'ch2Raw', 'ch1uV', 'ch2uV', 'leadOff']
    """
    rows: Dict[SensorType, list] = {sensor_type: [] for sensor_type in SensorType}
    dropped = 0

    for line_no, message in enumerate(messages, start=1):
        if not message.strip():
            continue
        try:
            sensor_type, readings = parse_message(message, config)
        except ParseError as exc:
            dropped += 1
            if verbose:
                print(f"Warning: dropping frame on line {line_no}: {exc}")
            continue
        if sensor_type is None:
            continue
        rows[sensor_type].extend(reading_to_row(r) for r in readings)

    if verbose and dropped:
        print(f"Dropped {dropped} malformed frames.")

    return {
        SENSORS[sensor_type].tag: pd.DataFrame(
            data, columns=list(SENSORS[sensor_type].csv_header)
        )
        for sensor_type, data in rows.items()
    }
