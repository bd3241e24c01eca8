"""Database configuration, initialization and the unit of work."""
import logging
import uuid

from sqlalchemy import create_engine
from sqlalchemy.orm import scoped_session, sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

# Create SQLAlchemy base
Base = declarative_base()

# Global session and engine
engine = None
db_session = None


def _engine_options(database_uri: str, echo: bool) -> dict:
    """Build create_engine kwargs for the configured backend."""
    if database_uri.startswith('sqlite'):
        # A single shared connection keeps in-memory databases alive across sessions
        return {
            'echo': echo,
            'poolclass': StaticPool,
            'connect_args': {'check_same_thread': False},
        }

    return {
        'echo': echo,
        'pool_pre_ping': True,  # Enable connection health checks
        'pool_size': 10,
        'max_overflow': 20,
    }


def init_db(app):
    """Initialize database connection."""
    global engine, db_session

    database_uri = app.config['SQLALCHEMY_DATABASE_URI']
    engine = create_engine(
        database_uri,
        **_engine_options(database_uri, app.config.get('SQLALCHEMY_ECHO', False))
    )

    db_session = scoped_session(
        sessionmaker(autocommit=False, autoflush=False, bind=engine)
    )

    Base.query = db_session.query_property()

    # Register teardown
    @app.teardown_appcontext
    def shutdown_session(exception=None):
        """Close database session and rollback on error."""
        if exception:
            db_session.rollback()
        db_session.remove()


def create_schema():
    """Create every table known to the models package."""
    import clinic_finance.models  # noqa: F401  (registers mappers on Base)

    Base.metadata.create_all(bind=engine)


def drop_schema():
    """Drop every table (test and administrative use only)."""
    import clinic_finance.models  # noqa: F401

    Base.metadata.drop_all(bind=engine)


def get_session():
    """Get database session."""
    return db_session


class UnitOfWork:
    """
    Transactional scope spanning several writes.

    Everything added through the wrapped session between ``__enter__`` and
    ``__exit__`` is committed together, or rolled back together when any
    exception escapes the block (commit failures included).

    Usage:
        with UnitOfWork(session) as uow:
            uow.add(payment)
            uow.flush()
            uow.add(ledger_entry)
    """

    def __init__(self, session):
        self.session = session
        self.committed = False

    def __enter__(self):
        return self

    def add(self, instance):
        self.session.add(instance)
        return instance

    def add_all(self, instances):
        self.session.add_all(instances)
        return instances

    def delete(self, instance):
        self.session.delete(instance)

    def flush(self):
        self.session.flush()

    def __exit__(self, exc_type, exc, tb):
        if exc_type is not None:
            logger.debug(f"UnitOfWork rollback after {exc_type.__name__}: {exc}")
            self.session.rollback()
            return False

        try:
            self.session.commit()
            self.committed = True
        except Exception:
            self.session.rollback()
            raise
        return False


def generate_id() -> str:
    """Opaque unique identifier used as primary key for every table."""
    return str(uuid.uuid4())
