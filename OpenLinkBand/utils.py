import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union


def get_utc_timestamp() -> str:
    """
    Get current UTC timestamp in ISO 8601 format.

    Returns:
    --------
    str : ISO 8601 formatted timestamp with UTC timezone
    """
    return datetime.now(timezone.utc).isoformat()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def human_timestamp(moment: Optional[datetime] = None) -> str:
    """Filename-safe local timestamp, e.g. ``2026-10-19_14-03-22``."""
    moment = moment or datetime.now()
    return moment.strftime("%Y-%m-%d_%H-%M-%S")


def compact_timestamp(moment: Optional[datetime] = None) -> str:
    """Compact local timestamp, e.g. ``20261019_140322``."""
    moment = moment or datetime.now()
    return moment.strftime("%Y%m%d_%H%M%S")


def unique_path(directory: Union[str, Path], filename: str) -> Path:
    """
    Return ``directory / filename``, adding ``_1``, ``_2``, ... before the
    extension if that name is already taken.
    """
    directory = Path(directory)
    candidate = directory / filename
    if not candidate.exists():
        return candidate

    stem, suffix = os.path.splitext(filename)
    index = 1
    while True:
        candidate = directory / f"{stem}_{index}{suffix}"
        if not candidate.exists():
            return candidate
        index += 1


def ensure_directory(path: Union[str, Path]) -> Path:
    """Create ``path`` (and parents) if missing and return it as a Path."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path
