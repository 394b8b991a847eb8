"""Tests for database engine setup and initialization."""

from pathlib import Path

from sqlalchemy import inspect, text

from pimsctl.infrastructure.database.engine import create_db_engine, init_database


class TestCreateDbEngine:
    def test_wal_mode_enabled(self, tmp_path: Path) -> None:
        engine = create_db_engine(tmp_path / "test.db")
        with engine.connect() as conn:
            assert conn.execute(text("PRAGMA journal_mode")).scalar() == "wal"
        engine.dispose()


class TestInitDatabase:
    def test_creates_profile_directory(self, tmp_path: Path) -> None:
        init_database(tmp_path).dispose()
        assert (tmp_path / ".pimsctl").is_dir()
        assert (tmp_path / ".pimsctl" / "plugins").is_dir()
        assert (tmp_path / ".pimsctl" / "pimsctl.db").exists()

    def test_creates_all_tables(self, tmp_path: Path) -> None:
        engine = init_database(tmp_path)
        assert set(inspect(engine).get_table_names()) == {"session_state", "dynamic_rules"}
        engine.dispose()

    def test_idempotent(self, tmp_path: Path) -> None:
        init_database(tmp_path).dispose()
        engine = init_database(tmp_path)
        assert "dynamic_rules" in inspect(engine).get_table_names()
        engine.dispose()
