import os
import sqlite3
import unittest

from chopphub import create_app
from chopphub.config import Config
from chopphub.db import close_db
from chopphub.db_migrations import to_sqlalchemy_url
from tests.helpers.temp_db import TempDbSandbox


def _table_exists(db_path: str, table_name: str) -> bool:
    conn = sqlite3.connect(db_path)
    try:
        row = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name = ?",
            (table_name,),
        ).fetchone()
        return row is not None
    finally:
        conn.close()


class SqlAlchemyUrlTest(unittest.TestCase):
    def test_postgres_scheme_is_normalized(self) -> None:
        self.assertEqual(to_sqlalchemy_url("postgres://u:p@db/chopp"), "postgresql://u:p@db/chopp")
        self.assertEqual(to_sqlalchemy_url("postgresql://u:p@db/chopp"), "postgresql://u:p@db/chopp")

    def test_file_path_becomes_sqlite_url(self) -> None:
        url = to_sqlalchemy_url(os.path.join("data", "chopphub.db"))
        self.assertTrue(url.startswith("sqlite:///"))
        self.assertTrue(url.endswith("/data/chopphub.db"))

    def test_empty_path_is_rejected(self) -> None:
        with self.assertRaises(RuntimeError):
            to_sqlalchemy_url("  ")


class DbMigrationsTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="chopphub_migrations")
        self.db_path = self._temp_db.db_path
        self._prev_env = os.environ.get("FLASK_ENV")
        os.environ["FLASK_ENV"] = "development"

    def tearDown(self) -> None:
        if self._prev_env is None:
            os.environ.pop("FLASK_ENV", None)
        else:
            os.environ["FLASK_ENV"] = self._prev_env
        self._temp_db.cleanup()

    def _build_app(self, *, testing: bool, db_auto_init: bool):
        return create_app(self._temp_db.make_config(Config, TESTING=testing, DB_AUTO_INIT=db_auto_init))

    def test_schema_not_created_by_default(self) -> None:
        app = self._build_app(testing=False, db_auto_init=False)
        with app.app_context():
            close_db()

        self.assertFalse(_table_exists(self.db_path, "companies"))

    def test_schema_created_with_explicit_dev_flag(self) -> None:
        app = self._build_app(testing=False, db_auto_init=True)
        with app.app_context():
            close_db()

        self.assertTrue(_table_exists(self.db_path, "companies"))
        self.assertTrue(_table_exists(self.db_path, "equipment_loans"))

    def test_flask_db_upgrade_and_downgrade(self) -> None:
        app = self._build_app(testing=False, db_auto_init=False)
        runner = app.test_cli_runner()

        upgrade_result = runner.invoke(args=["db", "upgrade"])
        self.assertEqual(upgrade_result.exit_code, 0, msg=upgrade_result.output)
        self.assertTrue(_table_exists(self.db_path, "companies"))
        self.assertTrue(_table_exists(self.db_path, "invoices"))

        downgrade_result = runner.invoke(args=["db", "downgrade", "base"])
        self.assertEqual(downgrade_result.exit_code, 0, msg=downgrade_result.output)
        self.assertFalse(_table_exists(self.db_path, "companies"))

        reupgrade_result = runner.invoke(args=["db", "upgrade"])
        self.assertEqual(reupgrade_result.exit_code, 0, msg=reupgrade_result.output)
        self.assertTrue(_table_exists(self.db_path, "companies"))

    def test_flask_db_init_creates_schema(self) -> None:
        app = self._build_app(testing=False, db_auto_init=False)
        result = app.test_cli_runner().invoke(args=["db", "init"])
        self.assertEqual(result.exit_code, 0, msg=result.output)
        self.assertTrue(_table_exists(self.db_path, "notifications"))


if __name__ == "__main__":
    unittest.main()
