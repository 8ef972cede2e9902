"""Path checks for image uploads and export destinations.

Both kinds of path must be local and carry one of the allowed suffixes.
Uploads must name an existing regular file; exports must land in an existing
directory.  Every rejection is a ``ValueError`` so callers can report it as a
failed ingestion or export without crashing.
"""
from __future__ import annotations

from pathlib import Path
from typing import FrozenSet, Iterable, Union
from urllib.parse import urlparse

PathLike = Union[str, Path]


def allowed_suffixes(formats: Iterable[str]) -> FrozenSet[str]:
    """Map ``png`` / ``.PNG`` style format names to lower-case suffixes."""
    return frozenset("." + fmt.lower().lstrip(".") for fmt in formats)


def _local_path(path: PathLike) -> Path:
    text = str(path)
    scheme = urlparse(text).scheme
    # One-letter schemes are Windows drives such as C:
    if len(scheme) > 1:
        raise ValueError(f"Only local files are supported, got a {scheme} URL")
    return Path(text).expanduser()


def _check_suffix(path: Path, formats: Iterable[str]) -> None:
    if path.suffix.lower() not in allowed_suffixes(formats):
        raise ValueError(f"Unsupported file extension: {path.suffix or '(none)'}")


def validate_upload_path(path: PathLike, formats: Iterable[str]) -> Path:
    """Return the resolved path of an image picked or dropped by the user."""
    candidate = _local_path(path)
    if not candidate.is_file():
        raise ValueError(f"Not an existing file: {path}")
    _check_suffix(candidate, formats)
    return candidate.resolve()


def validate_export_path(path: PathLike, formats: Iterable[str]) -> Path:
    """Return the resolved destination for an exported composite."""
    target = _local_path(path).resolve()
    if not target.parent.is_dir():
        raise ValueError(f"Export directory does not exist: {target.parent}")
    _check_suffix(target, formats)
    return target
