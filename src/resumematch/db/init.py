from __future__ import annotations

from resumematch.config import get_settings
from resumematch.db.base import Base
from resumematch.db.session import engine
from resumematch.db import models  # noqa: F401


def ensure_data_directories() -> None:
    settings = get_settings()
    settings.data_dir.mkdir(parents=True, exist_ok=True)


def init_database() -> dict[str, str]:
    ensure_data_directories()
    Base.metadata.create_all(bind=engine)
    return {"database_url": engine.url.render_as_string(hide_password=True)}
