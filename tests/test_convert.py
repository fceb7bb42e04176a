import csv
import importlib
import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from OpenLinkBand.cli import main
from OpenLinkBand.convert import convert
from OpenLinkBand.errors import FileOperationError
from OpenLinkBand.linkband import LinkBand
from OpenLinkBand.sensors import SensorType

stream_module = importlib.import_module("OpenLinkBand.stream")

TS = "2026-10-19T12:00:00.000000+00:00"


def eeg_frame(tick: int = 0) -> bytes:
    data = bytearray(179)
    data[0:4] = tick.to_bytes(4, "little")
    data[5:8] = (100).to_bytes(3, "big")
    data[8:11] = (200).to_bytes(3, "big")
    return bytes(data)


def ppg_frame() -> bytes:
    data = bytearray(172)
    data[4:10] = bytes([0, 0, 100, 0, 0, 200])
    return bytes(data)


def line(uuid: str, payload: bytes) -> str:
    return f"{TS}\t{uuid}\t{payload.hex()}\n"


def rows(path: Path):
    with open(path, newline="", encoding="utf-8") as f:
        return list(csv.reader(f))[1:]


class ConvertTestCase(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.root = Path(self._tmp.name)
        self.infile = self.root / "raw.txt"
        self.outdir = self.root / "out"
        self.infile.write_text(
            line(LinkBand.EEG_NOTIFY_UUID, eeg_frame(0))
            + line(LinkBand.EEG_NOTIFY_UUID, eeg_frame(32768))
            + line(LinkBand.PPG_UUID, ppg_frame())
            + line(LinkBand.EEG_NOTIFY_UUID, bytes(30))  # truncated frame
            + line(LinkBand.EEG_WRITE_UUID, b"\x02h\n")  # not a sensor stream
            + line(LinkBand.BATTERY_UUID, bytes([90]))
            + "\n",
            encoding="utf-8",
        )


class ConvertTests(ConvertTestCase):
    def test_replays_log_into_recording_files(self):
        files = convert(self.infile, outdir=self.outdir, verbose=False)

        by_prefix = {p.name.split("_data_")[0]: p for p in files}
        self.assertEqual(set(by_prefix), {"eeg", "ppg", "accel", "raw"})
        eeg = rows(by_prefix["eeg"])
        self.assertEqual(len(eeg), 50)
        self.assertEqual(float(eeg[25][0]), 1.0)
        self.assertEqual(rows(by_prefix["ppg"])[0][1:], ["100", "200"])
        self.assertEqual(rows(by_prefix["accel"]), [])

        document = json.loads(by_prefix["raw"].read_text())
        self.assertEqual(len(document["timestamp"]), 50 + 28)

    def test_sensor_subset(self):
        files = convert(self.infile, outdir=self.outdir, sensors={SensorType.PPG}, verbose=False)

        self.assertEqual(sorted(p.name.split("_data_")[0] for p in files), ["ppg", "raw"])

    def test_missing_input(self):
        with self.assertRaises(FileNotFoundError):
            convert(self.root / "missing.txt", outdir=self.outdir, verbose=False)

    def test_unwritable_output(self):
        blocker = self.root / "blocker"
        blocker.write_text("")

        with self.assertRaises(FileOperationError):
            convert(self.infile, outdir=blocker / "out", verbose=False)


class CliTests(ConvertTestCase):
    def test_convert_command(self):
        code = main(["convert", str(self.infile), "-o", str(self.outdir), "--sensors", "eeg"])

        self.assertEqual(code, 0)
        self.assertEqual(len(list(self.outdir.glob("eeg_data_*.csv"))), 1)
        self.assertEqual(len(list(self.outdir.glob("raw_data_*.json"))), 1)
        self.assertEqual(list(self.outdir.glob("ppg_data_*.csv")), [])

    def test_convert_missing_file_returns_error(self):
        self.assertEqual(main(["convert", str(self.root / "missing.txt")]), 1)

    def test_unknown_sensor_is_a_usage_error(self):
        with self.assertRaises(SystemExit) as ctx:
            main(["convert", str(self.infile), "--sensors", "eeg,gyro"])
        self.assertEqual(ctx.exception.code, 2)

    def test_stream_rejects_non_positive_duration(self):
        with self.assertRaises(SystemExit):
            main(["stream", "--address", "AA:BB", "--duration", "0"])

    @patch.object(stream_module, "stream")
    def test_stream_command(self, mock_stream):
        mock_stream.return_value = [self.outdir / "eeg_data_x.csv"]

        code = main(
            [
                "stream",
                "--address",
                "AA:BB",
                "-o",
                str(self.outdir),
                "--sensors",
                "eeg,accel",
                "--preset",
                "low_power",
                "--motion",
            ]
        )

        self.assertEqual(code, 0)
        kwargs = mock_stream.call_args.kwargs
        self.assertEqual(kwargs["address"], "AA:BB")
        self.assertEqual(kwargs["sensors"], {SensorType.EEG, SensorType.ACCELEROMETER})
        self.assertEqual(kwargs["config"].eeg_sample_rate, 125.0)
        self.assertTrue(kwargs["motion"])
        self.assertFalse(kwargs["validate"])

    @patch.object(stream_module, "stream", return_value=[])
    def test_stream_without_files_fails(self, _):
        self.assertEqual(main(["stream", "--address", "AA:BB"]), 1)

    @patch("OpenLinkBand.cli.resolve_address", side_effect=ValueError("No LinkBand devices discovered."))
    def test_autodiscovery_failure(self, _):
        self.assertEqual(main(["record"]), 1)


if __name__ == "__main__":
    unittest.main()
