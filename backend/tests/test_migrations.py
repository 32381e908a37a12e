"""
Migration tests: the Alembic revisions build the same schema as the models.
"""

from pathlib import Path

from alembic.autogenerate import compare_metadata
from alembic.migration import MigrationContext
from flask_migrate import upgrade
from sqlalchemy import inspect

from pos_backend import create_app
from pos_backend.config import TestConfig
from pos_backend.extensions import db

MIGRATIONS_DIR = Path(__file__).resolve().parent.parent / "migrations"


def test_upgrade_matches_models(tmp_path):
    class MigratedConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'pos-migrations.sqlite3'}"

    app = create_app(MigratedConfig)
    with app.app_context():
        upgrade(directory=str(MIGRATIONS_DIR))

        with db.engine.connect() as connection:
            tables = set(inspect(connection).get_table_names())
            diff = compare_metadata(MigrationContext.configure(connection), db.metadata)

        db.engine.dispose()

    assert {"users", "products", "inventory_logs", "sales", "sale_items", "system_logs"} <= tables
    assert diff == []
