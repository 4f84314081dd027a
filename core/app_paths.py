"""Where the habit grid server keeps its SQLite file, credentials and logs."""
from __future__ import annotations

import logging
import os
import sys
from functools import lru_cache
from pathlib import Path
from typing import List

logger = logging.getLogger(__name__)

DATA_DIR_ENV = ("HABITGRID_DATA_DIR", "HABITGRID_STORAGE_DIR")
APP_DIR_NAME = "habitgrid"


def data_root_candidates() -> List[Path]:
    """Data directories to try, most specific first."""
    roots = [Path(os.environ[key]).expanduser() for key in DATA_DIR_ENV if os.environ.get(key)]
    if sys.platform.startswith("win") and os.environ.get("APPDATA"):
        roots.append(Path(os.environ["APPDATA"]) / "HabitGrid")
    elif sys.platform == "darwin":
        roots.append(Path.home() / "Library" / "Application Support" / "HabitGrid")
    else:
        xdg = os.environ.get("XDG_DATA_HOME")
        roots.append(Path(xdg) / APP_DIR_NAME if xdg else Path.home() / ".local" / "share" / APP_DIR_NAME)
    roots.append(Path(__file__).resolve().parent.parent / "data")
    return roots


@lru_cache(maxsize=1)
def get_data_root() -> Path:
    """First candidate directory that exists or can be created."""
    for root in data_root_candidates():
        try:
            root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.debug("Skipping data directory %s: %s", root, exc)
            continue
        logger.debug("Data directory: %s", root)
        return root
    raise RuntimeError("No writable data directory for the habit grid server")


def resolve_data_path(*parts: str | os.PathLike[str], create_parents: bool = False) -> Path:
    """Resolve ``parts`` under the data root; absolute paths are kept as given."""
    path = Path(*parts)
    if not path.is_absolute():
        path = get_data_root() / path
    if create_parents:
        path.parent.mkdir(parents=True, exist_ok=True)
    return path
