"""Engine and session handling for the catalog database.

One engine per process, pointed at the SQLite file in the data directory
unless ``configure_database`` supplied another URL. Repository methods open
short transactions through ``session_scope``.
"""

from __future__ import annotations

import logging
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from catalog_engine.core.config import get_db_path

from .models import Base

logger = logging.getLogger(__name__)

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None
_database_url: str | None = None


def configure_database(url: str | None) -> None:
    """Use ``url`` for subsequent connections; None means the default file."""
    global _database_url
    close_database()
    _database_url = url


def get_database_url() -> str:
    return _database_url or f"sqlite:///{get_db_path()}"


def _enable_sqlite_pragmas(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    # Steps of different jobs may write at the same time
    cursor.execute("PRAGMA busy_timeout=30000")
    cursor.close()


def get_engine() -> Engine:
    """The process-wide engine, created on first use."""
    global _engine
    if _engine is not None:
        return _engine

    url = get_database_url()
    is_sqlite = url.startswith("sqlite")
    _engine = create_engine(
        url,
        pool_pre_ping=True,
        connect_args={"check_same_thread": False, "timeout": 30} if is_sqlite else {},
    )
    if is_sqlite:
        event.listen(_engine, "connect", _enable_sqlite_pragmas)
    logger.debug(f"Database engine created for {_engine.url}")
    return _engine


def get_session() -> Session:
    """A new session from the shared factory."""
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(bind=get_engine(), expire_on_commit=False)
    return _session_factory()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Commit on success, roll back on any error."""
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_database(use_migrations: bool = True) -> None:
    """Create or upgrade the schema.

    With ``use_migrations`` the database is brought to the Alembic head
    revision; without it the ORM metadata is created directly, which is what
    the test suite uses.
    """
    engine = get_engine()
    if not use_migrations:
        Base.metadata.create_all(engine)
        return

    cfg = alembic_config(engine)
    if cfg is None:
        logger.warning("No Alembic setup next to the package, creating tables directly")
        Base.metadata.create_all(engine)
        return
    _migrate(engine, cfg)


def get_project_root() -> Path:
    """Directory holding alembic.ini and migrations/."""
    import catalog_engine

    return Path(catalog_engine.__file__).parent.parent


def alembic_config(engine: Engine | None = None) -> Config | None:
    """Alembic config bound to the engine's URL, or None if alembic.ini is missing."""
    root = get_project_root()
    ini_path = root / "alembic.ini"
    if not ini_path.exists():
        return None

    url = (engine or get_engine()).url.render_as_string(hide_password=False)
    cfg = Config(str(ini_path))
    cfg.set_main_option("script_location", str(root / "migrations"))
    cfg.set_main_option("sqlalchemy.url", url)
    return cfg


def schema_revisions(engine: Engine, cfg: Config) -> tuple[str | None, str | None]:
    """(stored revision, head revision) for the database."""
    with engine.connect() as connection:
        stored = MigrationContext.configure(connection).get_current_revision()
    return stored, ScriptDirectory.from_config(cfg).get_current_head()


def _migrate(engine: Engine, cfg: Config) -> None:
    stored, head = schema_revisions(engine, cfg)
    if stored == head:
        logger.debug(f"Schema already at revision {head}")
        return

    if stored is None:
        existing = set(inspect(engine).get_table_names())
        if set(Base.metadata.tables) <= existing:
            # Built by create_all; record the revision instead of re-creating
            logger.info(f"Tables already present, stamping revision {head}")
            command.stamp(cfg, "head")
            return
        logger.info(f"Creating schema at revision {head}")
    else:
        logger.info(f"Upgrading schema from {stored} to {head}")

    command.upgrade(cfg, "head")
    logger.info("Schema migration finished")


def reset_database() -> None:
    """Drop every table and create them again, empty."""
    engine = get_engine()
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)


def close_database() -> None:
    """Dispose of the engine and forget the session factory."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
        _engine = None
    _session_factory = None
