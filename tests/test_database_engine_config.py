import os


def test_get_engine_kwargs_sqlite_has_check_same_thread(monkeypatch):
    # Import lazily so monkeypatch can affect env usage deterministically.
    from taskreset.database import database as db

    kwargs = db.get_engine_kwargs("sqlite:///./taskreset.db")
    assert "connect_args" in kwargs
    assert kwargs["connect_args"]["check_same_thread"] is False
    # SQLite should not require pool sizing knobs.
    assert "pool_size" not in kwargs
    assert "max_overflow" not in kwargs
    assert kwargs["pool_pre_ping"] is True


def test_get_engine_kwargs_postgres_reads_pool_settings(monkeypatch):
    from taskreset.database import database as db

    monkeypatch.setenv("DB_POOL_SIZE", "7")
    monkeypatch.setenv("DB_MAX_OVERFLOW", "3")
    monkeypatch.setenv("DB_POOL_TIMEOUT_SEC", "15")

    kwargs = db.get_engine_kwargs("postgresql+psycopg://u:p@localhost:5432/db")
    assert "connect_args" not in kwargs
    assert kwargs["pool_pre_ping"] is True
    assert kwargs["pool_size"] == 7
    assert kwargs["max_overflow"] == 3
    assert kwargs["pool_timeout"] == 15


def test_debug_enables_echo(monkeypatch):
    from taskreset.database import database as db

    monkeypatch.setenv("DEBUG", "true")
    assert db.get_engine_kwargs("sqlite:///./taskreset.db")["echo"] is True


def test_sqlite_pragmas_listener_is_guarded():
    from taskreset.database import database as db

    assert db._is_sqlite_url("sqlite:///./taskreset.db") is True
    assert db._is_sqlite_url("postgresql+psycopg://u:p@localhost/db") is False


def test_ensure_legacy_schema_adds_specific_reset_hours_for_sqlite(tmp_path):
    """Databases created before SpecificHours existed are patched in place."""
    from sqlalchemy import create_engine, text
    from taskreset.database import database as db

    db_path = tmp_path / "legacy.db"
    url = f"sqlite:///{db_path}"
    engine = create_engine(url, connect_args={"check_same_thread": False})

    # Create a minimal legacy schema missing the new column.
    with engine.begin() as conn:
        conn.execute(
            text(
                "CREATE TABLE IF NOT EXISTS managed_tasks ("
                "id VARCHAR PRIMARY KEY,"
                "owner_id VARCHAR,"
                "title VARCHAR,"
                "category VARCHAR,"
                "specific_reset_days JSON"
                ")"
            )
        )

    # Apply compatibility patch (twice: it must be idempotent).
    db.ensure_legacy_schema_compat(engine_override=engine, database_url_override=url)
    db.ensure_legacy_schema_compat(engine_override=engine, database_url_override=url)

    raw = engine.raw_connection()
    try:
        assert db._sqlite_table_has_column(raw, "managed_tasks", "specific_reset_hours") is True
    finally:
        raw.close()


def test_ensure_legacy_schema_ignores_postgres():
    from taskreset.database import database as db

    # Returns before touching any connection.
    db.ensure_legacy_schema_compat(database_url_override="postgresql+psycopg://u:p@localhost/db")
