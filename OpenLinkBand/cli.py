import argparse
import sys

from .find import find_devices, resolve_address
from .sensors import PRESETS, SensorType


def _add_find_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-t",
        "--timeout",
        type=int,
        default=10,
        help="Scan timeout in seconds (default: 10)",
    )


def _parse_sensors(parser: argparse.ArgumentParser, text):
    if not text:
        return None
    try:
        return {SensorType.from_name(s) for s in text.split(",") if s.strip()}
    except ValueError as exc:
        parser.error(str(exc))


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="OpenLinkBand", description="OpenLinkBand utilities"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # find subcommand
    p_find = subparsers.add_parser("find", help="Scan for LinkBand devices")
    _add_find_args(p_find)

    def handle_find(ns):
        find_devices(timeout=ns.timeout, verbose=True)
        return 0

    p_find.set_defaults(func=handle_find)

    # record subcommand
    p_rec = subparsers.add_parser(
        "record", help="Connect and record raw notifications to a text file"
    )
    p_rec.add_argument(
        "--address", required=False, help="Device address (e.g., MAC on Windows). Omit to autodiscover."
    )
    p_rec.add_argument(
        "--duration",
        "-d",
        type=float,
        default=30.0,
        help="Recording duration in seconds (default: 30)",
    )
    p_rec.add_argument(
        "--outfile", "-o", default="linkband_record.txt", help="Output text file path"
    )

    def handle_record(ns):
        from .stream import record_raw

        if ns.duration <= 0:
            parser.error("--duration must be positive")

        address = ns.address
        if not address:
            address = resolve_address()
            print(f"Autodiscovered device: {address}")

        record_raw(
            address=address,
            duration=ns.duration,
            outfile=ns.outfile,
            verbose=True,
        )
        return 0

    p_rec.set_defaults(func=handle_record)

    # stream subcommand
    p_stream = subparsers.add_parser(
        "stream",
        help="Decode live notifications and save them as CSV + JSON recordings",
    )
    p_stream.add_argument(
        "--address",
        required=False,
        help="Device address (e.g., MAC on Windows). Omit to autodiscover.",
    )
    p_stream.add_argument(
        "--duration",
        "-d",
        type=float,
        default=None,
        help="Optional recording duration in seconds. Omit to record until interrupted.",
    )
    p_stream.add_argument(
        "--outdir", "-o", default="recordings", help="Output directory (default: recordings)"
    )
    p_stream.add_argument(
        "--sensors",
        default=None,
        help=(
            "Comma-separated sensors to record (case-insensitive). "
            "Options: EEG, PPG, ACCEL, BATTERY. Default: EEG,PPG,ACCEL"
        ),
    )
    p_stream.add_argument(
        "--preset",
        default="default",
        choices=sorted(PRESETS),
        help="Sampling-rate preset of the headband firmware (default: default)",
    )
    p_stream.add_argument(
        "--validate",
        action="store_true",
        help="Drop readings outside their physiological range",
    )
    p_stream.add_argument(
        "--motion",
        action="store_true",
        help="Remove gravity from accelerometer readings",
    )

    def handle_stream(ns):
        from .stream import stream

        if ns.duration is not None and ns.duration <= 0:
            parser.error("--duration must be positive when provided")
        sensors = _parse_sensors(parser, ns.sensors)

        address = ns.address
        if not address:
            address = resolve_address()
            print(f"Autodiscovered device: {address}")

        files = stream(
            address=address,
            outdir=ns.outdir,
            sensors=sensors,
            duration=ns.duration,
            validate=ns.validate,
            motion=ns.motion,
            config=PRESETS[ns.preset],
            verbose=True,
        )
        return 0 if files else 1

    p_stream.set_defaults(func=handle_stream)

    # convert subcommand
    p_conv = subparsers.add_parser(
        "convert",
        help="Decode a raw notification log into CSV + JSON recordings",
    )
    p_conv.add_argument("infile", help="Raw log written by 'record'")
    p_conv.add_argument(
        "--outdir", "-o", default="recordings", help="Output directory (default: recordings)"
    )
    p_conv.add_argument(
        "--sensors",
        default=None,
        help="Comma-separated sensors to convert. Default: EEG,PPG,ACCEL",
    )
    p_conv.add_argument(
        "--preset",
        default="default",
        choices=sorted(PRESETS),
        help="Sampling-rate preset the log was recorded with (default: default)",
    )
    p_conv.add_argument(
        "--validate",
        action="store_true",
        help="Drop readings outside their physiological range",
    )

    def handle_convert(ns):
        from .convert import convert

        sensors = _parse_sensors(parser, ns.sensors)
        files = convert(
            ns.infile,
            outdir=ns.outdir,
            sensors=sensors,
            validate=ns.validate,
            config=PRESETS[ns.preset],
            verbose=True,
        )
        for path in files:
            print(f"Wrote {path}")
        return 0

    p_conv.set_defaults(func=handle_convert)

    args = parser.parse_args(argv)
    try:
        return args.func(args)
    except KeyboardInterrupt:
        print("Interrupted.")
        return 130
    except ValueError as e:
        # Discovery or argument validation raised a user-facing error
        print(str(e), file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
