"""Database configuration and initialization."""
from sqlalchemy import create_engine, BigInteger, Integer
from sqlalchemy.orm import scoped_session, sessionmaker, declarative_base

# Create SQLAlchemy base
Base = declarative_base()

# BIGINT on PostgreSQL, INTEGER on SQLite so autoincrement primary keys work there
BigInt = BigInteger().with_variant(Integer(), 'sqlite')

# Global session and engine
engine = None
db_session = scoped_session(sessionmaker(autocommit=False, autoflush=False))


def init_db(app):
    """Initialize database connection."""
    global engine

    database_uri = app.config['SQLALCHEMY_DATABASE_URI']
    engine_options = {
        'echo': app.config.get('SQLALCHEMY_ECHO', False),
        'pool_pre_ping': True,  # Enable connection health checks
    }
    if database_uri.startswith('sqlite'):
        engine_options['connect_args'] = {'check_same_thread': False, 'timeout': 30}
    else:
        engine_options['pool_size'] = 10
        engine_options['max_overflow'] = 20

    if engine is not None:
        engine.dispose()
    engine = create_engine(database_uri, **engine_options)

    db_session.remove()
    db_session.configure(bind=engine)

    Base.query = db_session.query_property()

    if app.config.get('AUTO_CREATE_TABLES'):
        # Import models so every table is registered on the metadata
        from app import models  # noqa: F401
        Base.metadata.create_all(bind=engine)

    # Register teardown
    @app.teardown_appcontext
    def shutdown_session(exception=None):
        """Close database session and rollback on error."""
        if exception:
            db_session.rollback()
        db_session.remove()


def get_session():
    """Get database session."""
    return db_session


def get_engine():
    """Get the engine bound by the last init_db call."""
    return engine
