"""
LinkBand Recording Session
==========================

Persists decoded readings while a recording is active.

Output Files (per session):
---------------------------
- One CSV per selected sensor kind, ``{tag}_data_{YYYY-MM-DD_HH-MM-SS}.csv``,
  header row written as soon as the file is created and one row appended per
  reading while recording.
- One aggregate document ``raw_data_{YYYYMMDD_HHMMSS}.json`` holding parallel
  arrays (timestamp, eegChannel1, eegChannel2, eegLeadOff, ppgRed, ppgIr,
  accelX, accelY, accelZ). The arrays are accumulated in memory and the file
  is written once, from offset zero, when the session stops. Every recorded
  sample adds one entry to every array; fields that belong to another sensor
  kind are ``null``.

State Machine:
--------------
    IDLE --start_recording()--> RECORDING --stop_recording()--> IDLE

Writers exist only while RECORDING. stop_recording() always returns to IDLE,
even when the aggregate document cannot be written, so a failed flush never
leaves the session stuck.

Threading:
----------
BLE notifications may arrive on a transport thread while the owner starts and
stops recordings from another. Every operation that touches files, the
aggregate buffer or the sensor selection runs under one lock, so rows never
interleave and stop_recording() sees every record() that started before it.

Listener callbacks are handed to a ``dispatch`` callable after the lock is
released (for example ``executor.submit`` or ``loop.call_soon_threadsafe``);
by default they run inline on the calling thread. Errors are reported only
through ``RecordingListener.on_recording_failed``; nothing here raises into
the BLE callback path.
"""

import atexit
import contextlib
import enum
import json
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import (
    BinaryIO,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Sequence,
    Tuple,
    Union,
)

from .decode import (
    AccelerometerReading,
    BatteryReading,
    EEGReading,
    PPGReading,
    Reading,
    reading_to_row,
    sensor_type_of,
)
from .errors import (
    AlreadyRecordingError,
    EncodingError,
    FileOperationError,
    ReadingTypeError,
    RecordingError,
)
from .sensors import (
    AGGREGATE_FIELDS,
    DEFAULT_RECORDING_SENSORS,
    SENSORS,
    SensorType,
)
from .utils import compact_timestamp, ensure_directory, human_timestamp, unique_path, utc_now


class RecordingState(enum.Enum):
    IDLE = "idle"
    RECORDING = "recording"

    @property
    def is_recording(self) -> bool:
        return self is RecordingState.RECORDING


# ============================================================================
# File writer
# ============================================================================


class FileWriter:
    """Append-only byte sink around one open binary file handle."""

    def __init__(self, handle: BinaryIO, path: Optional[Path] = None):
        self._handle: Optional[BinaryIO] = handle
        self.path = path

    @classmethod
    def create(cls, path: Path) -> "FileWriter":
        """Create (or truncate) ``path`` and wrap it."""
        return cls(open(path, "wb"), path)

    @property
    def closed(self) -> bool:
        return self._handle is None

    def write(self, data: bytes) -> None:
        """Append ``data`` and hand it to the OS immediately."""
        if self._handle is None:
            raise ValueError("write to closed FileWriter")
        self._handle.write(data)
        self._handle.flush()

    def rewrite(self, data: bytes) -> None:
        """Replace the whole file content with ``data``."""
        if self._handle is None:
            raise ValueError("write to closed FileWriter")
        self._handle.seek(0)
        self._handle.write(data)
        self._handle.truncate()
        self._handle.flush()

    def close(self) -> None:
        """Close the handle. Safe to call any number of times."""
        handle, self._handle = self._handle, None
        if handle is not None:
            handle.close()


# ============================================================================
# Aggregate buffer
# ============================================================================

_NO_EEG: Tuple[None, None, None] = (None, None, None)
_NO_PPG: Tuple[None, None] = (None, None)
_NO_ACCEL: Tuple[None, None, None] = (None, None, None)


@dataclass
class AggregateBuffer:
    """Column-oriented accumulator for every sample recorded in a session."""

    timestamp: List[float] = field(default_factory=list)
    eeg_channel1: List[Optional[float]] = field(default_factory=list)
    eeg_channel2: List[Optional[float]] = field(default_factory=list)
    eeg_lead_off: List[Optional[int]] = field(default_factory=list)
    ppg_red: List[Optional[int]] = field(default_factory=list)
    ppg_ir: List[Optional[int]] = field(default_factory=list)
    accel_x: List[Optional[int]] = field(default_factory=list)
    accel_y: List[Optional[int]] = field(default_factory=list)
    accel_z: List[Optional[int]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.timestamp)

    def _append(
        self,
        timestamp: float,
        eeg: Tuple[Optional[float], Optional[float], Optional[int]] = _NO_EEG,
        ppg: Tuple[Optional[int], Optional[int]] = _NO_PPG,
        accel: Tuple[Optional[int], Optional[int], Optional[int]] = _NO_ACCEL,
    ) -> None:
        self.timestamp.append(timestamp)
        self.eeg_channel1.append(eeg[0])
        self.eeg_channel2.append(eeg[1])
        self.eeg_lead_off.append(eeg[2])
        self.ppg_red.append(ppg[0])
        self.ppg_ir.append(ppg[1])
        self.accel_x.append(accel[0])
        self.accel_y.append(accel[1])
        self.accel_z.append(accel[2])

    def append_eeg(self, reading: EEGReading) -> None:
        self._append(
            reading.timestamp,
            eeg=(reading.channel1, reading.channel2, 1 if reading.lead_off else 0),
        )

    def append_ppg(self, reading: PPGReading) -> None:
        self._append(reading.timestamp, ppg=(reading.red, reading.ir))

    def append_accelerometer(self, reading: AccelerometerReading) -> None:
        self._append(reading.timestamp, accel=(reading.x, reading.y, reading.z))

    def append(self, reading: Reading) -> None:
        if isinstance(reading, EEGReading):
            self.append_eeg(reading)
        elif isinstance(reading, PPGReading):
            self.append_ppg(reading)
        elif isinstance(reading, AccelerometerReading):
            self.append_accelerometer(reading)
        elif isinstance(reading, BatteryReading):
            pass  # battery level is reported live only
        else:
            raise TypeError(f"Not a sensor reading: {reading!r}")

    def clear(self) -> None:
        for column in self._columns():
            column.clear()

    def _columns(self) -> Tuple[list, ...]:
        return (
            self.timestamp,
            self.eeg_channel1,
            self.eeg_channel2,
            self.eeg_lead_off,
            self.ppg_red,
            self.ppg_ir,
            self.accel_x,
            self.accel_y,
            self.accel_z,
        )

    def to_dict(self) -> Dict[str, list]:
        """Arrays keyed by their JSON field names, in document order."""
        return dict(zip(AGGREGATE_FIELDS, (list(c) for c in self._columns())))

    def to_json(self) -> str:
        """
        Serialize the buffer.

        Raises ValueError for values JSON cannot represent (NaN, infinity).
        """
        return json.dumps(self.to_dict(), allow_nan=False)


# ============================================================================
# Listener
# ============================================================================


class RecordingListener:
    """
    Receives session events. Override any subset of the methods.

    The session holds an optional reference to a listener and never depends on
    one being present.
    """

    def on_recording_started(self, timestamp: datetime) -> None:
        pass

    def on_recording_stopped(self, timestamp: datetime, files: List[Path]) -> None:
        pass

    def on_recording_failed(self, error: RecordingError) -> None:
        pass


def _call_inline(fn: Callable[[], None]) -> None:
    fn()


def _first_mismatch(sensor_type: SensorType, readings: Sequence[object]) -> Optional[int]:
    """Index of the first item that is not a reading of ``sensor_type``, or None."""
    for index, item in enumerate(readings):
        try:
            if sensor_type_of(item) is sensor_type:
                continue
        except TypeError:
            pass
        return index
    return None


# ============================================================================
# Session
# ============================================================================


class RecordingSession:
    """
    Record decoded readings to per-sensor CSV files and one aggregate JSON file.

    Parameters
    ----------
    directory : str | Path
        Where recordings are written. Created on the first start.
    listener : RecordingListener, optional
        Receives started / stopped / failed events.
    dispatch : callable, optional
        ``dispatch(fn)`` schedules listener delivery on the caller's preferred
        execution context. Defaults to calling ``fn`` inline.
    verbose : bool
        Print progress and warnings.
    """

    def __init__(
        self,
        directory: Union[str, Path] = ".",
        listener: Optional[RecordingListener] = None,
        dispatch: Optional[Callable[[Callable[[], None]], object]] = None,
        verbose: bool = False,
    ):
        self.directory = Path(directory)
        self.listener = listener
        self.verbose = verbose
        self._dispatch = dispatch or _call_inline

        self._lock = threading.RLock()
        self._state = RecordingState.IDLE
        self._selected: frozenset = frozenset(DEFAULT_RECORDING_SENSORS)
        self._csv_writers: Dict[SensorType, FileWriter] = {}
        self._aggregate_writer: Optional[FileWriter] = None
        self._buffer = AggregateBuffer()
        self._files: List[Path] = []

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> RecordingState:
        return self._state

    @property
    def is_recording(self) -> bool:
        return self._state.is_recording

    @property
    def selected_sensor_types(self) -> frozenset:
        with self._lock:
            return self._selected

    @property
    def recording_files(self) -> List[Path]:
        """Files of the active recording, or of the last one once stopped."""
        with self._lock:
            return list(self._files)

    @property
    def buffered_samples(self) -> int:
        with self._lock:
            return len(self._buffer)

    def get_recorded_files(self) -> List[Path]:
        """All recording files (CSV and JSON) in the recordings directory."""
        if not self.directory.is_dir():
            return []
        return sorted(
            p
            for p in self.directory.iterdir()
            if p.is_file() and p.suffix in (".csv", ".json")
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start_recording(
        self, selected_types: Optional[Iterable[SensorType]] = None
    ) -> bool:
        """
        Open fresh output files and begin recording.

        Returns False (and reports the error to the listener) if a recording
        is already running or the files cannot be created; the session then
        stays as it was.
        """
        selected = (
            frozenset(DEFAULT_RECORDING_SENSORS)
            if selected_types is None
            else frozenset(selected_types)
        )

        with self._lock:
            if self._state.is_recording:
                error: Optional[RecordingError] = AlreadyRecordingError()
            else:
                error = self._open_files(selected)
                if error is None:
                    self._selected = selected
                    self._buffer.clear()
                    self._state = RecordingState.RECORDING
                    atexit.register(self._stop_at_exit)
            files = list(self._files)

        if error is not None:
            if self.verbose:
                print(f"Failed to start recording: {error}")
            self._notify_failed(error)
            return False

        started_at = utc_now()
        if self.verbose:
            names = ", ".join(t.value for t in SensorType if t in selected)
            print(f"Recording {names} to {self.directory} ({len(files)} files)")
        self._notify(lambda listener: listener.on_recording_started(started_at))
        return True

    def stop_recording(self) -> List[Path]:
        """
        Write the aggregate document, close all files and return to IDLE.

        Returns the files produced by the session, or an empty list if the
        session was not recording or finalizing failed.
        """
        with self._lock:
            if not self._state.is_recording:
                return []

            error: Optional[RecordingError] = None
            try:
                error = self._write_aggregate()
            finally:
                close_error = self._close_writers()
                self._state = RecordingState.IDLE
                atexit.unregister(self._stop_at_exit)
            if error is None:
                error = close_error
            files = list(self._files)
            n_samples = len(self._buffer)

        stopped_at = utc_now()
        if error is not None:
            if self.verbose:
                print(f"Failed to stop recording: {error}")
            self._notify_failed(error)
            return []

        if self.verbose:
            print(f"Recording stopped. {n_samples} samples in {len(files)} files.")
        self._notify(lambda listener: listener.on_recording_stopped(stopped_at, files))
        return files

    def update_selected_sensors(self, selected_types: Iterable[SensorType]) -> None:
        """
        Change which sensor kinds future record() calls write.

        Files already open stay open; a deselected kind simply stops
        receiving rows.
        """
        selected = frozenset(selected_types)
        with self._lock:
            self._selected = selected

    # ------------------------------------------------------------------
    # Data
    # ------------------------------------------------------------------

    def record(self, sensor_type: SensorType, readings: Sequence[Reading]) -> None:
        """
        Append ``readings`` (all of kind ``sensor_type``) to the session.

        Does nothing unless recording and ``sensor_type`` is selected.
        Battery readings are accepted but never archived. If any item is not
        a reading of ``sensor_type``, nothing is written and a
        ReadingTypeError is reported to the listener.
        """
        readings = list(readings)
        mismatch = _first_mismatch(sensor_type, readings)
        with self._lock:
            if not self._can_record(sensor_type):
                return
            if mismatch is not None:
                error: RecordingError = ReadingTypeError(sensor_type.value, readings[mismatch])
            elif sensor_type is SensorType.BATTERY:
                return
            else:
                error = self._append_rows(sensor_type, readings)
                if error is None:
                    return

        if self.verbose:
            print(f"Warning: {error}")
        self._notify_failed(error)

    def record_eeg(self, readings: Sequence[EEGReading]) -> None:
        self.record(SensorType.EEG, readings)

    def record_ppg(self, readings: Sequence[PPGReading]) -> None:
        self.record(SensorType.PPG, readings)

    def record_accelerometer(self, readings: Sequence[AccelerometerReading]) -> None:
        self.record(SensorType.ACCELEROMETER, readings)

    def record_battery(self, reading: BatteryReading) -> None:
        self.record(SensorType.BATTERY, [reading])

    # ------------------------------------------------------------------
    # Internals (call with the lock held)
    # ------------------------------------------------------------------

    def _can_record(self, sensor_type: SensorType) -> bool:
        return self._state.is_recording and sensor_type in self._selected

    def _append_rows(
        self, sensor_type: SensorType, readings: Sequence[Reading]
    ) -> Optional[RecordingError]:
        lines = []
        for reading in readings:
            self._buffer.append(reading)
            lines.append(",".join(str(v) for v in reading_to_row(reading)) + "\n")

        writer = self._csv_writers.get(sensor_type)
        if writer is None or not lines:
            return None
        try:
            writer.write("".join(lines).encode("utf-8"))
        except OSError as exc:
            return FileOperationError(f"could not write {writer.path}: {exc}")
        return None

    def _open_files(self, selected: frozenset) -> Optional[RecordingError]:
        self._files = []
        self._csv_writers = {}
        self._aggregate_writer = None

        now = datetime.now()
        csv_stamp = human_timestamp(now)
        try:
            ensure_directory(self.directory)

            json_path = unique_path(
                self.directory, f"raw_data_{compact_timestamp(now)}.json"
            )
            self._aggregate_writer = FileWriter.create(json_path)
            self._files.append(json_path)

            for sensor_type in SensorType:
                if sensor_type not in selected:
                    continue
                spec = SENSORS[sensor_type]
                csv_path = unique_path(self.directory, f"{spec.csv_prefix}_{csv_stamp}.csv")
                writer = FileWriter.create(csv_path)
                self._csv_writers[sensor_type] = writer
                self._files.append(csv_path)
                writer.write((",".join(spec.csv_header) + "\n").encode("utf-8"))
        except OSError as exc:
            self._close_writers()
            for path in self._files:
                with contextlib.suppress(OSError):
                    path.unlink()
            self._files = []
            return FileOperationError(f"could not create recording files: {exc}")
        return None

    def _write_aggregate(self) -> Optional[RecordingError]:
        if self._aggregate_writer is None:
            return None
        try:
            payload = self._buffer.to_json().encode("utf-8")
        except (TypeError, ValueError) as exc:
            return EncodingError(str(exc))
        try:
            self._aggregate_writer.rewrite(payload)
        except OSError as exc:
            return FileOperationError(
                f"could not write {self._aggregate_writer.path}: {exc}"
            )
        return None

    def _close_writers(self) -> Optional[RecordingError]:
        error: Optional[RecordingError] = None
        writers = list(self._csv_writers.values())
        if self._aggregate_writer is not None:
            writers.append(self._aggregate_writer)
        for writer in writers:
            try:
                writer.close()
            except OSError as exc:
                if error is None:
                    error = FileOperationError(f"could not close {writer.path}: {exc}")
        self._csv_writers = {}
        self._aggregate_writer = None
        return error

    def _stop_at_exit(self) -> None:
        if self.is_recording:
            if self.verbose:
                print("Interpreter exiting; stopping active recording ...")
            self.stop_recording()

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def _notify(self, action: Callable[[RecordingListener], None]) -> None:
        listener = self.listener
        if listener is None:
            return

        def deliver() -> None:
            try:
                action(listener)
            except Exception as exc:
                if self.verbose:
                    print(f"Warning: recording listener raised: {exc}")

        self._dispatch(deliver)

    def _notify_failed(self, error: RecordingError) -> None:
        self._notify(lambda listener: listener.on_recording_failed(error))
