from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from backend.core import config


engine = create_engine(
    config.DATABASE_URL,
    connect_args={'check_same_thread': False} if config.DATABASE_URL.startswith('sqlite') else {},
)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_availability_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_availability_schema(bind=None) -> None:
    global _availability_schema_checked

    if _availability_schema_checked:
        return

    bind = bind or engine

    with _schema_lock:
        if _availability_schema_checked:
            return

        inspector = inspect(bind)

        if 'provider_availability' not in inspector.get_table_names():
            _availability_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('provider_availability')}
        migration_steps = [
            ('recurrence_group_id', 'ALTER TABLE provider_availability ADD COLUMN recurrence_group_id VARCHAR(36)'),
            ('special_requirements', 'ALTER TABLE provider_availability ADD COLUMN special_requirements JSON'),
            ('notes', 'ALTER TABLE provider_availability ADD COLUMN notes VARCHAR(500)'),
        ]

        with bind.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS ix_provider_availability_provider_date '
                    'ON provider_availability(provider_id, date)'
                )
            )
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS ix_provider_availability_date_status '
                    'ON provider_availability(date, status)'
                )
            )
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS ix_provider_availability_utc_range '
                    'ON provider_availability(utc_start_time, utc_end_time)'
                )
            )
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS ix_provider_availability_recurrence_group_id '
                    'ON provider_availability(recurrence_group_id)'
                )
            )

        _availability_schema_checked = True
