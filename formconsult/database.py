import logging
import os
from dotenv import load_dotenv
from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker


load_dotenv()
DATABASE_URL = os.getenv("DATABASE_URL")

engine = create_engine(DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

logger = logging.getLogger(__name__)

# Columns added after the first release, per table, in the order they shipped.
COLUMN_UPGRADES = {
    'users': [
        ('company_id', 'ALTER TABLE users ADD COLUMN company_id VARCHAR'),
        ('specialties', 'ALTER TABLE users ADD COLUMN specialties JSON'),
        ('is_available', 'ALTER TABLE users ADD COLUMN is_available BOOLEAN NOT NULL DEFAULT TRUE'),
        ('total_sessions', 'ALTER TABLE users ADD COLUMN total_sessions INTEGER NOT NULL DEFAULT 0'),
        ('rating', 'ALTER TABLE users ADD COLUMN rating FLOAT NOT NULL DEFAULT 0'),
        ('success_rate', 'ALTER TABLE users ADD COLUMN success_rate FLOAT NOT NULL DEFAULT 0'),
        ('response_time_minutes', 'ALTER TABLE users ADD COLUMN response_time_minutes INTEGER'),
    ],
    'appointments': [
        ('urgency', "ALTER TABLE appointments ADD COLUMN urgency VARCHAR NOT NULL DEFAULT 'normal'"),
        ('meeting_url', 'ALTER TABLE appointments ADD COLUMN meeting_url VARCHAR'),
        ('completed_at', 'ALTER TABLE appointments ADD COLUMN completed_at TIMESTAMP'),
    ],
    'notifications': [
        ('data', 'ALTER TABLE notifications ADD COLUMN data JSON'),
    ],
}

INDEXES = {
    'appointments': [
        'CREATE INDEX IF NOT EXISTS idx_appointments_status_scheduled ON appointments(status, scheduled_at)',
        'CREATE INDEX IF NOT EXISTS idx_appointments_consultant_status ON appointments(consultant_id, status)',
        'CREATE INDEX IF NOT EXISTS idx_appointments_company_status ON appointments(company_id, status)',
    ],
    'notifications': [
        'CREATE INDEX IF NOT EXISTS idx_notifications_user_read ON notifications(user_id, is_read, created_at)',
    ],
}

_schema_lock = Lock()
_schema_checked = False


def _upgrade_table(connection, table_name: str, existing_columns: set[str]) -> None:
    for column_name, statement in COLUMN_UPGRADES.get(table_name, []):
        if column_name not in existing_columns:
            logger.info('Adding column %s.%s', table_name, column_name)
            connection.execute(text(statement))
    for statement in INDEXES.get(table_name, []):
        connection.execute(text(statement))


def ensure_schema() -> None:
    """Bring tables created by older releases up to the current models, once per process."""
    global _schema_checked

    if _schema_checked:
        return

    with _schema_lock:
        if _schema_checked:
            return

        inspector = inspect(engine)
        present_tables = set(inspector.get_table_names())
        existing_columns = {
            table_name: {column['name'] for column in inspector.get_columns(table_name)}
            for table_name in sorted(COLUMN_UPGRADES.keys() | INDEXES.keys())
            if table_name in present_tables
        }

        with engine.begin() as connection:
            for table_name, columns in existing_columns.items():
                _upgrade_table(connection, table_name, columns)

        _schema_checked = True
