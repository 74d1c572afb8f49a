from __future__ import annotations

from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

HOME_ENV = Path.home() / ".strikegold" / ".env"


def env_candidates(explicit: Optional[str] = None) -> list:
    if explicit:
        return [Path(explicit).expanduser()]
    return [Path.cwd() / ".env", HOME_ENV]


def load_local_environment(explicit: Optional[str] = None) -> Optional[Path]:
    """Load provider credentials from the first .env file found.

    An explicit path is the only candidate when given. Otherwise ./.env in the
    working directory is tried, then ~/.strikegold/.env. Variables already set
    in the process environment are left alone. Returns the loaded file, or None.
    """
    for path in env_candidates(explicit):
        if path.is_file():
            load_dotenv(dotenv_path=path, override=False)
            return path
    return None
