from pathlib import Path

from alembic import command
from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import create_engine, inspect

from atelier.infra.db import Base
from atelier.settings import settings

ROOT = Path(__file__).resolve().parents[1]


def _alembic_config() -> Config:
    config = Config(str(ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(ROOT / "alembic"))
    return config


def test_alembic_has_single_head():
    script_directory = ScriptDirectory.from_config(_alembic_config())

    heads = script_directory.get_heads()

    assert len(heads) == 1, f"Expected 1 Alembic head, found {heads}"


def test_alembic_upgrade_head_matches_models(tmp_path):
    db_path = tmp_path / "migrated.db"
    original_database_url = settings.database_url
    try:
        settings.database_url = f"sqlite+aiosqlite:///{db_path}"
        command.upgrade(_alembic_config(), "head")
    finally:
        settings.database_url = original_database_url

    engine = create_engine(f"sqlite:///{db_path}")
    inspector = inspect(engine)
    tables = set(inspector.get_table_names()) - {"alembic_version"}
    assert tables == set(Base.metadata.tables)

    for table_name, table in Base.metadata.tables.items():
        migrated = {column["name"] for column in inspector.get_columns(table_name)}
        assert migrated == set(table.columns.keys()), table_name
    engine.dispose()
