"""Alembic upgrade driven from application settings."""

from __future__ import annotations

from alembic import command
from alembic.config import Config

from deltagov.config.settings import Settings


def run_migrations(settings: Settings) -> None:
    """Upgrade the configured database to head. Blocking; run it off the event loop."""
    alembic_cfg = Config(str(settings.alembic_config))
    # configparser interpolation treats "%" as special
    alembic_cfg.set_main_option("sqlalchemy.url", str(settings.database_url).replace("%", "%%"))
    command.upgrade(alembic_cfg, "head")
