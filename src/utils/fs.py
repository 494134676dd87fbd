"""Filesystem helpers for render configuration files.

Provides:
    - YAML load (safe_load) with clear errors for missing/broken files
    - Atomic YAML dump (tmp file → fsync → rename) so readers never see a
      half-written config
    - Directory creation with exist_ok semantics

All paths go through pathlib.Path.

Usage:
    from src.utils import fs
    raw = fs.load_yaml("configs/render.v1.yaml")
    fs.atomic_yaml_dump(raw, "outputs/last_render.yaml")
"""

import os
from pathlib import Path
from typing import Any, Dict, Union

import yaml


def ensure_dir(p: Union[str, Path]) -> Path:
    """Create directory (and parents) if missing; return it as a Path."""
    p = Path(p)
    p.mkdir(parents=True, exist_ok=True)
    return p


def atomic_write_bytes(path: Union[str, Path], data: bytes, tmp_suffix: str = ".tmp") -> None:
    """Write bytes to `path` through a sibling temporary file.

    Parameters
    ----------
    path : Union[str, Path]
        Target file path
    data : bytes
        Payload
    tmp_suffix : str
        Suffix of the temporary sibling, default ".tmp"

    Raises
    ------
    OSError
        If the write or rename fails; the temporary file is removed first
    """
    path = Path(path)
    ensure_dir(path.parent)
    tmp_path = path.with_suffix(path.suffix + tmp_suffix)

    try:
        with open(tmp_path, 'wb') as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        tmp_path.replace(path)
    except OSError:
        if tmp_path.exists():
            tmp_path.unlink()
        raise


def atomic_yaml_dump(obj: Any, path: Union[str, Path]) -> None:
    """Serialize `obj` with yaml.safe_dump (insertion order kept) and write atomically."""
    text = yaml.safe_dump(obj, default_flow_style=False, sort_keys=False, allow_unicode=True)
    atomic_write_bytes(path, text.encode('utf-8'))


def load_yaml(path: Union[str, Path]) -> Dict[str, Any]:
    """Load a YAML mapping.

    Parameters
    ----------
    path : Union[str, Path]
        YAML file path

    Returns
    -------
    Dict[str, Any]
        Parsed content; an empty file yields {}

    Raises
    ------
    FileNotFoundError
        If file doesn't exist
    yaml.YAMLError
        If YAML parsing fails
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"YAML file not found: {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise yaml.YAMLError(f"Failed to parse YAML file {path}: {e}") from e

    return data if data is not None else {}
