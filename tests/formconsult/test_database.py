from sqlalchemy import create_engine, inspect, text

from formconsult import database


def _legacy_engine(tmp_path):
    engine = create_engine(f'sqlite:///{tmp_path / "legacy.db"}')
    with engine.begin() as connection:
        connection.execute(
            text('CREATE TABLE users (id VARCHAR PRIMARY KEY, email VARCHAR NOT NULL, name VARCHAR, role VARCHAR NOT NULL)')
        )
        connection.execute(
            text(
                'CREATE TABLE appointments ('
                'id VARCHAR PRIMARY KEY, title VARCHAR NOT NULL, description TEXT, '
                'scheduled_at TIMESTAMP NOT NULL, duration INTEGER NOT NULL, status VARCHAR NOT NULL, '
                'requester_id VARCHAR NOT NULL, consultant_id VARCHAR, company_id VARCHAR, notes TEXT, '
                'created_at TIMESTAMP NOT NULL, updated_at TIMESTAMP NOT NULL)'
            )
        )
        connection.execute(
            text("INSERT INTO users VALUES ('consultant-7', 'c7@formconsult.test', 'Claire', 'CONSULTANT')")
        )
        connection.execute(
            text(
                "INSERT INTO appointments VALUES ('a1', 'Coaching', NULL, '2026-03-02 10:00:00', 60, 'PENDING', "
                "'employee-1', NULL, 'acme', NULL, '2026-02-01 09:00:00', '2026-02-01 09:00:00')"
            )
        )
    return engine


def _columns(engine, table_name: str) -> set[str]:
    return {column['name'] for column in inspect(engine).get_columns(table_name)}


def test_ensure_schema_adds_missing_columns(tmp_path, monkeypatch) -> None:
    engine = _legacy_engine(tmp_path)
    monkeypatch.setattr(database, 'engine', engine)
    monkeypatch.setattr(database, '_schema_checked', False)

    database.ensure_schema()

    assert {'urgency', 'meeting_url', 'completed_at'} <= _columns(engine, 'appointments')
    assert {'specialties', 'is_available', 'total_sessions', 'rating', 'success_rate'} <= _columns(engine, 'users')
    indexes = {index['name'] for index in inspect(engine).get_indexes('appointments')}
    assert {
        'idx_appointments_status_scheduled',
        'idx_appointments_consultant_status',
        'idx_appointments_company_status',
    } <= indexes
    with engine.connect() as connection:
        assert connection.execute(text("SELECT urgency FROM appointments WHERE id = 'a1'")).scalar() == 'normal'
        assert connection.execute(text("SELECT total_sessions FROM users WHERE id = 'consultant-7'")).scalar() == 0
    assert database._schema_checked is True


def test_ensure_schema_is_idempotent(tmp_path, monkeypatch) -> None:
    engine = _legacy_engine(tmp_path)
    monkeypatch.setattr(database, 'engine', engine)

    monkeypatch.setattr(database, '_schema_checked', False)
    database.ensure_schema()
    monkeypatch.setattr(database, '_schema_checked', False)
    database.ensure_schema()

    assert 'urgency' in _columns(engine, 'appointments')


def test_ensure_schema_runs_once(tmp_path, monkeypatch) -> None:
    engine = _legacy_engine(tmp_path)
    monkeypatch.setattr(database, 'engine', engine)
    monkeypatch.setattr(database, '_schema_checked', True)

    database.ensure_schema()

    assert 'urgency' not in _columns(engine, 'appointments')


def test_ensure_schema_on_empty_database(tmp_path, monkeypatch) -> None:
    engine = create_engine(f'sqlite:///{tmp_path / "empty.db"}')
    monkeypatch.setattr(database, 'engine', engine)
    monkeypatch.setattr(database, '_schema_checked', False)

    database.ensure_schema()

    assert inspect(engine).get_table_names() == []
    assert database._schema_checked is True


def test_user_table_stores_no_credentials() -> None:
    from formconsult.models.user import User

    assert 'hashed_password' not in User.__table__.columns
