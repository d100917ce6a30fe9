"""
Database engine and session management
"""

import logging
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from models import Base

logger = logging.getLogger(__name__)

# Global engine and session factory
ENGINE = None
SessionLocal = None


def init_database(database_uri=None, **engine_options):
    """Initialize database engine and session factory"""
    global ENGINE, SessionLocal

    if database_uri is None:
        from config import Config
        config = Config()
        database_uri = config.get_database_uri()
        engine_options = dict(config.SQLALCHEMY_ENGINE_OPTIONS, **engine_options)

    if database_uri.startswith('sqlite'):
        # One shared connection so every session sees the same in-memory data
        engine_options = {
            'connect_args': {'check_same_thread': False},
            'poolclass': StaticPool,
        }

    if ENGINE is not None:
        ENGINE.dispose()

    ENGINE = create_engine(database_uri, **engine_options)
    SessionLocal = sessionmaker(bind=ENGINE, autoflush=False, autocommit=False, expire_on_commit=False)

    logger.info(f"Database initialized: {ENGINE.url.render_as_string(hide_password=True)}")
    return ENGINE, SessionLocal


def get_session():
    """Get a database session"""
    if SessionLocal is None:
        init_database()
    return SessionLocal()


def create_tables():
    """Create all tables registered on the declarative Base"""
    # Register every model module with Base.metadata
    import models  # noqa: F401
    import fee_models  # noqa: F401
    import notification_models  # noqa: F401
    import leave_models  # noqa: F401

    if ENGINE is None:
        init_database()
    Base.metadata.create_all(bind=ENGINE)


def drop_tables():
    if ENGINE is not None:
        Base.metadata.drop_all(bind=ENGINE)
