from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv


@lru_cache()
def load_env_once() -> str | None:
    """
    Load a .env file from the repo root *if it exists*.

    Nothing here is required: every BOOKFEST_* knob has a default, so a
    missing .env is the normal case and we just rely on the environment.
    Variables already set in the environment win over the file.
    """
    # bookfest/utils/env_loader.py -> bookfest -> repo root
    repo_root = Path(__file__).resolve().parents[2]
    env_path = repo_root / ".env"

    if env_path.exists():
        load_dotenv(dotenv_path=env_path, override=False)
        return str(env_path)

    return None
