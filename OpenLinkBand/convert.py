"""Replay a raw notification log into CSV and JSON recording files."""

from pathlib import Path
from typing import Iterable, List, Optional, Union

from .decode import parse_message
from .errors import ParseError, RecordingError
from .record import RecordingListener, RecordingSession
from .sensors import DEFAULT_CONFIG, SensorConfiguration, SensorType
from .validate import validate_reading


class _ErrorCollector(RecordingListener):
    def __init__(self):
        self.errors: List[RecordingError] = []

    def on_recording_failed(self, error: RecordingError) -> None:
        self.errors.append(error)


def convert(
    infile: Union[str, Path],
    outdir: Union[str, Path] = "recordings",
    sensors: Optional[Iterable[SensorType]] = None,
    validate: bool = False,
    config: SensorConfiguration = DEFAULT_CONFIG,
    verbose: bool = True,
) -> List[Path]:
    """
    Decode a raw log written by ``record_raw`` and record it like a live session.

    Malformed frames are skipped. Returns the files written.

    Raises
    ------
    FileNotFoundError : if ``infile`` does not exist
    RecordingError : if the output files cannot be created or finalized
    """
    infile = Path(infile)
    if not infile.is_file():
        raise FileNotFoundError(f"No such raw log: {infile}")

    collector = _ErrorCollector()
    session = RecordingSession(outdir, listener=collector, verbose=verbose)
    if not session.start_recording(sensors):
        raise collector.errors[0]

    n_messages = 0
    dropped = 0
    try:
        with open(infile, "r", encoding="utf-8") as f:
            for line_no, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                n_messages += 1
                try:
                    sensor_type, readings = parse_message(line, config)
                except ParseError as exc:
                    dropped += 1
                    if verbose:
                        print(f"Warning: line {line_no}: {exc}")
                    continue
                if sensor_type is None:
                    continue
                if validate:
                    readings = [r for r in readings if validate_reading(r, config)]
                session.record(sensor_type, readings)
    finally:
        files = session.stop_recording()

    if collector.errors:
        raise collector.errors[0]

    if verbose:
        print(f"Converted {n_messages} notifications ({dropped} dropped) from {infile}.")
    return files
