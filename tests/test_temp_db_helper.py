import os
import tempfile
import unittest

from compras.db import SCHEMA_TABLES
from tests.helpers.temp_db import TempDbSandbox, assert_safe_temp_db_path


class TempDbHelperTest(unittest.TestCase):
    def test_temp_db_create_and_cleanup(self) -> None:
        sandbox = TempDbSandbox(prefix="temp_db_sanity")
        db_path = sandbox.db_path
        temp_dir = sandbox.temp_dir

        self.assertTrue(os.path.exists(temp_dir))
        self.assertTrue(db_path.startswith(os.path.realpath(tempfile.gettempdir())))

        db = sandbox.connect()
        rows = db.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
        self.assertTrue(set(SCHEMA_TABLES) <= {row["name"] for row in rows})

        sandbox.cleanup()
        self.assertFalse(os.path.exists(db_path))
        self.assertFalse(os.path.exists(temp_dir))

    def test_make_config_points_app_at_sandbox(self) -> None:
        sandbox = TempDbSandbox(prefix="temp_db_config")
        try:
            config = sandbox.make_config(object, LIST_PAGE_SIZE=5)
            self.assertEqual((config.DB_PATH, config.TESTING, config.LIST_PAGE_SIZE), (sandbox.db_path, True, 5))
        finally:
            sandbox.cleanup()

    def test_disallow_workspace_paths(self) -> None:
        workspace_db = os.path.join(os.getcwd(), "compras_test.db")
        with self.assertRaises(ValueError):
            assert_safe_temp_db_path(workspace_db)


if __name__ == "__main__":
    unittest.main()
