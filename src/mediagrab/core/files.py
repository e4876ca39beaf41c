from __future__ import annotations

import os
from pathlib import Path


def ensure_directory(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def write_bytes_atomic(dst: Path, data: bytes) -> None:
    ensure_directory(dst.parent)
    temp_path = dst.parent / f".{dst.name}.tmp"
    temp_path.write_bytes(data)
    os.replace(temp_path, dst)


def is_writable_directory(path: Path) -> bool:
    try:
        ensure_directory(path)
    except OSError:
        return False
    return os.access(path, os.W_OK)
