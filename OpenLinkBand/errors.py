"""Exception types raised by the decoder and reported by the recording session."""

from typing import Optional


class LinkBandError(Exception):
    """Base class for all OpenLinkBand errors."""


# ----------------------------------------------------------------------------
# Decoding
# ----------------------------------------------------------------------------


class ParseError(LinkBandError, ValueError):
    """A notification payload could not be decoded."""


class LengthMismatchError(ParseError):
    def __init__(self, expected: int, actual: int, sensor: Optional[str] = None):
        self.expected = expected
        self.actual = actual
        self.sensor = sensor
        prefix = f"{sensor} " if sensor else ""
        super().__init__(
            f"{prefix}packet length mismatch: expected {expected} bytes, got {actual}"
        )


class EmptyInputError(ParseError):
    def __init__(self, sensor: Optional[str] = None):
        self.sensor = sensor
        prefix = f"{sensor} " if sensor else ""
        super().__init__(f"{prefix}data is empty")


# ----------------------------------------------------------------------------
# Recording
# ----------------------------------------------------------------------------


class RecordingError(LinkBandError):
    """A recording session operation failed."""


class AlreadyRecordingError(RecordingError):
    def __init__(self):
        super().__init__("Already recording")


class FileOperationError(RecordingError):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"File operation failed: {reason}")


class EncodingError(RecordingError):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Failed to encode recording: {reason}")


class ReadingTypeError(RecordingError):
    def __init__(self, expected: str, item: object):
        self.expected = expected
        self.item = item
        super().__init__(f"Expected {expected} readings, got {item!r}")
