"""
Project name/version lookup used to stamp log records.

The installed distribution metadata wins (wheels, containers); a source
checkout falls back to the nearest pyproject.toml.
"""

import tomllib
from functools import lru_cache
from importlib import metadata as importlib_metadata
from pathlib import Path
from typing import Any

DISTRIBUTION_NAME = "datacore"


def find_pyproject(start: Path, max_up: int = 5) -> Path | None:
    """Walk up from `start` (at most `max_up` levels) looking for pyproject.toml."""
    current = start
    for _ in range(max_up):
        candidate = current / "pyproject.toml"
        if candidate.is_file():
            return candidate
        if current.parent == current:
            break
        current = current.parent
    return None


def load_pyproject_data(pyproject_path: Path) -> dict:
    # tomllib expects a binary file object
    with pyproject_path.open("rb") as f:
        return tomllib.load(f)


def get_pyproject_value(
    key: str,
    start: str | Path | None = None,
    max_up: int = 5,
    default: Any = None,
) -> Any:
    """
    Return the value for a dot-separated `key` ("project.version") from the
    nearest pyproject.toml, or `default` when the file or key is missing or
    the file cannot be parsed.
    """
    start_path = Path(start).resolve() if start is not None else Path(__file__).resolve().parent
    pyproject = find_pyproject(start_path, max_up=max_up)
    if pyproject is None or not key:
        return default

    try:
        data = load_pyproject_data(pyproject)
    except (OSError, tomllib.TOMLDecodeError):
        return default

    current: Any = data
    for part in key.split("."):
        if not isinstance(current, dict) or part not in current:
            return default
        current = current[part]
    return current


def get_project_name(start: str | Path | None = None, default: str = DISTRIBUTION_NAME) -> str:
    return get_pyproject_value("project.name", start=start, default=None) or default


@lru_cache()
def get_project_version(default: str = "unknown") -> str:
    """Installed distribution version, else project.version from pyproject.toml."""
    try:
        return importlib_metadata.version(DISTRIBUTION_NAME)
    except importlib_metadata.PackageNotFoundError:
        value = get_pyproject_value("project.version", default=None)
        return str(value) if value is not None else default


__all__ = [
    "DISTRIBUTION_NAME",
    "find_pyproject",
    "load_pyproject_data",
    "get_pyproject_value",
    "get_project_name",
    "get_project_version",
]
