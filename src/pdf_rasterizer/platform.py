from __future__ import annotations

import subprocess
import sys
from pathlib import Path


def _launcher() -> str:
    if sys.platform.startswith("win"):
        return "explorer"
    if sys.platform == "darwin":
        return "open"
    return "xdg-open"


def open_folder(path: Path | str) -> subprocess.Popen[bytes]:
    """Show *path* in the host file browser without waiting for it to exit."""

    folder = Path(path)
    if not folder.is_dir():
        raise FileNotFoundError(f"Folder does not exist: {folder}")
    return subprocess.Popen(
        [_launcher(), str(folder)],
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
    )


__all__ = ["open_folder"]
