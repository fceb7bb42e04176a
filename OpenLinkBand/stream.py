"""
LinkBand BLE to Disk
====================

Connects to a headband with bleak and persists its notifications, either as a
raw hex log (``record_raw``) or decoded into a RecordingSession (``stream``).

Notification Flow:
------------------
1. bleak delivers each notification on its own callback invocation
   (``_on_data`` for the characteristic it arrived on)
2. The payload is decoded with ``parse_packet`` for that characteristic's
   sensor kind; malformed frames are reported and dropped, the stream goes on
3. Optionally, out-of-range readings are dropped (``validate=True``) and
   accelerometer readings have gravity removed (``motion=True``)
4. The readings are handed to ``RecordingSession.record``, which writes them
   only while recording and only for the selected sensor kinds

Battery notifications are printed when the level changes; they are not
archived.

Raw Log Format:
---------------
One line per notification, tab-separated:

    2026-10-19T12:00:00.123456+00:00    <characteristic UUID>    <hex payload>

``OpenLinkBand.decode.parse_message`` reads these lines back, and
``OpenLinkBand.convert`` replays them into a RecordingSession.
"""

import asyncio
import sys
import time
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from .backends import BleakBackend, run_sync
from .decode import Reading, parse_packet
from .errors import ParseError, RecordingError
from .linkband import LinkBand
from .process import AccelerometerMode, BatchCollector, MotionFilter
from .record import RecordingListener, RecordingSession
from .sensors import DEFAULT_CONFIG, SensorConfiguration, SensorType
from .utils import ensure_directory, get_utc_timestamp
from .validate import validate_reading

BatchCallback = Callable[[SensorType, List[Reading]], None]


class _ConsoleListener(RecordingListener):
    def __init__(self, verbose: bool):
        self.verbose = verbose
        self.errors: List[RecordingError] = []

    def on_recording_started(self, timestamp) -> None:
        if self.verbose:
            print(f"Recording started at {timestamp.isoformat()}")

    def on_recording_stopped(self, timestamp, files) -> None:
        if self.verbose:
            print(f"Recording stopped at {timestamp.isoformat()}")
            for path in files:
                print(f"  {path}")

    def on_recording_failed(self, error: RecordingError) -> None:
        self.errors.append(error)
        print(f"Recording error: {error}", file=sys.stderr)


async def _wait(duration: Optional[float], verbose: bool) -> None:
    if duration:
        if verbose:
            print(f"Streaming for {duration} seconds...")
        start = time.time()
        while time.time() - start < duration:
            await asyncio.sleep(0.05)
    else:
        if verbose:
            print("Streaming indefinitely. Press Ctrl+C to stop.")
        while True:
            await asyncio.sleep(1)


async def _stream_async(
    address: str,
    outdir: str,
    sensors: Optional[Iterable[SensorType]],
    duration: Optional[float],
    validate: bool,
    motion: bool,
    config: SensorConfiguration,
    on_batch: Optional[BatchCallback],
    batch_interval: float,
    verbose: bool,
) -> List[Path]:
    listener = _ConsoleListener(verbose)
    session = RecordingSession(outdir, listener=listener, verbose=verbose)
    motion_filter = MotionFilter(
        AccelerometerMode.MOTION if motion else AccelerometerMode.RAW
    )
    samples = {sensor_type: 0 for sensor_type in SensorType}
    dropped = 0
    last_battery: Optional[int] = None
    collectors: Dict[SensorType, BatchCollector] = {}
    if on_batch is not None:
        collectors = {
            sensor_type: BatchCollector(time_interval=batch_interval)
            for sensor_type in SensorType
            if sensor_type is not SensorType.BATTERY
        }

    def _callback(sensor_type: SensorType):
        def _on_data(_, data: bytearray):
            nonlocal dropped, last_battery
            try:
                readings = parse_packet(sensor_type, data, config)
            except ParseError as exc:
                dropped += 1
                if verbose:
                    print(f"Decoding error: {exc}")
                return

            if validate:
                readings = [r for r in readings if validate_reading(r, config)]
            if sensor_type is SensorType.ACCELEROMETER:
                readings = [motion_filter.apply(r) for r in readings]
            if sensor_type is SensorType.BATTERY and readings:
                level = readings[-1].level
                if verbose and level != last_battery:
                    print(f"Battery: {level}%")
                last_battery = level

            samples[sensor_type] += len(readings)
            session.record(sensor_type, readings)
            collector = collectors.get(sensor_type)
            if collector is not None:
                for batch in collector.extend(readings):
                    try:
                        on_batch(sensor_type, batch)
                    except Exception as exc:
                        print(f"Batch callback raised: {exc}", file=sys.stderr)

        return _on_data

    callbacks = {
        LinkBand.characteristic_for(sensor_type): _callback(sensor_type)
        for sensor_type in SensorType
    }

    files: List[Path] = []
    try:
        if verbose:
            print(f"Connecting to {address} ...")

        async with BleakBackend().client(address) as client:
            if verbose:
                print("Connected. Subscribing ...")
            subscribed = await LinkBand.subscribe(client, callbacks, verbose)

            if session.start_recording(sensors):
                try:
                    await _wait(duration, verbose)
                except asyncio.CancelledError:
                    pass
                finally:
                    files = session.stop_recording()

            await LinkBand.unsubscribe(client, subscribed)

    except asyncio.CancelledError:
        if verbose:
            print("Stream cancelled.")
    except Exception as exc:
        if verbose:
            print(f"An error occurred: {exc}")
    finally:
        if session.is_recording:
            files = session.stop_recording()
        if verbose:
            print(
                "Stream stopped. "
                + ", ".join(
                    f"{sensor_type.value}: {samples[sensor_type]} samples"
                    for sensor_type in SensorType
                )
                + (f", {dropped} frames dropped" if dropped else "")
            )

    return files


def stream(
    address: str,
    outdir: str = "recordings",
    sensors: Optional[Iterable[SensorType]] = None,
    duration: Optional[float] = None,
    validate: bool = False,
    motion: bool = False,
    config: SensorConfiguration = DEFAULT_CONFIG,
    on_batch: Optional[BatchCallback] = None,
    batch_interval: float = 1.0,
    verbose: bool = True,
) -> List[Path]:
    """
    Connect to a LinkBand, decode its notifications and record them to disk.

    Parameters
    ----------
    address : str
        Device address (e.g., MAC on Windows).
    outdir : str
        Directory for the CSV and JSON files.
    sensors : iterable of SensorType, optional
        Sensor kinds to record. Defaults to EEG, PPG and accelerometer.
    duration : float, optional
        Recording duration in seconds. Omit to record until interrupted.
    validate : bool
        Drop readings outside their physiological range before recording.
    motion : bool
        Record accelerometer readings with gravity removed.
    config : SensorConfiguration
        Sampling rates and scaling constants of the headband.
    on_batch : callable, optional
        ``on_batch(sensor_type, readings)`` is called with every
        ``batch_interval`` seconds of readings per sensor kind (battery
        excluded), after they are handed to the recording session.
    batch_interval : float
        Batch length in seconds of device time.
    verbose : bool
        If True, print verbose output.

    Returns
    -------
    list of Path : the files written, empty if the recording failed.
    """
    if not address:
        raise ValueError("address must be a non-empty string")
    if duration is not None and duration <= 0:
        raise ValueError("duration must be positive")
    if batch_interval <= 0:
        raise ValueError("batch_interval must be positive")

    return run_sync(
        _stream_async(
            address,
            outdir,
            sensors,
            duration,
            validate,
            motion,
            config,
            on_batch,
            batch_interval,
            verbose,
        )
    )


async def _record_raw_async(
    address: str,
    duration: float,
    outfile: Path,
    characteristics: Iterable[str],
    verbose: bool,
) -> Dict[str, int]:
    counts = {uuid: 0 for uuid in characteristics}
    ensure_directory(outfile.parent)

    with open(outfile, "a", encoding="utf-8") as log:

        def _callback(uuid: str):
            def _on_raw(_, data: bytearray):
                counts[uuid] += 1
                log.write(f"{get_utc_timestamp()}\t{uuid}\t{data.hex()}\n")

            return _on_raw

        if verbose:
            print(f"Connecting to {address} ...")

        async with BleakBackend().client(address) as client:
            subscribed = await LinkBand.subscribe(
                client, {uuid: _callback(uuid) for uuid in counts}, verbose
            )
            if verbose:
                print(f"Logging {len(subscribed)} characteristics to {outfile} for {duration} s ...")
            try:
                await asyncio.sleep(duration)
            except asyncio.CancelledError:
                pass
            finally:
                await LinkBand.unsubscribe(client, subscribed)

    if verbose:
        summary = ", ".join(
            f"{LinkBand.SENSOR_CHARACTERISTICS[uuid].value}: {n}"
            for uuid, n in counts.items()
            if uuid in LinkBand.SENSOR_CHARACTERISTICS
        )
        print(f"Done. {sum(counts.values())} notifications ({summary}) in {outfile}.")
    return counts


def record_raw(
    address: str,
    duration: float = 30.0,
    outfile: str = "linkband_record.txt",
    verbose: bool = True,
) -> Dict[str, int]:
    """
    Connect to a LinkBand and append every raw notification to a text file.

    The log keeps the undecoded payloads, so it can be decoded again later
    with ``decode_rawdata`` or turned into recording files with ``convert``.

    Parameters
    ----------
    address : str
        Device address (e.g., MAC on Windows).
    duration : float
        Logging duration in seconds.
    outfile : str
        Text file to append to. Parent directories are created.
    verbose : bool
        If True, print progress.

    Returns
    -------
    dict : notification count per characteristic UUID.
    """
    if not address:
        raise ValueError("address must be a non-empty string")
    if duration <= 0:
        raise ValueError("duration must be positive")
    if not outfile:
        raise ValueError("outfile must be a non-empty path")

    return run_sync(
        _record_raw_async(
            address,
            duration,
            Path(outfile),
            list(LinkBand.SENSOR_CHARACTERISTICS),
            verbose,
        )
    )
