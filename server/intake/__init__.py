"""Voice intake package; reads ``server/.env`` files on import."""
from __future__ import annotations

from pathlib import Path

from dotenv import load_dotenv

ENV_FILES = (".env", ".env.local")


def load_env_files(directory: Path) -> None:
    """Load each env file found in ``directory``; later files win."""

    for position, name in enumerate(ENV_FILES):
        load_dotenv(directory / name, override=position > 0)


load_env_files(Path(__file__).resolve().parent.parent)
