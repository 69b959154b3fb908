"""Database configuration and initialization."""
from sqlalchemy import create_engine, BigInteger, Integer
from sqlalchemy.orm import scoped_session, sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

# Create SQLAlchemy base
Base = declarative_base()

# BIGINT ids on PostgreSQL; SQLite only autoincrements INTEGER PRIMARY KEY
BigIntPK = BigInteger().with_variant(Integer, "sqlite")

# Global session and engine
engine = None
db_session = None


def _engine_options(database_uri):
    """Pool options for the configured backend."""
    if database_uri.startswith('sqlite'):
        # In-memory SQLite must share a single connection across the scoped sessions
        return {
            'poolclass': StaticPool,
            'connect_args': {'check_same_thread': False},
        }
    return {
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
        echo=app.config.get('SQLALCHEMY_ECHO', False),
        **_engine_options(database_uri)
    )

    db_session = scoped_session(
        sessionmaker(autoflush=False, expire_on_commit=False, bind=engine)
    )

    Base.query = db_session.query_property()

    # Register teardown
    @app.teardown_appcontext
    def shutdown_session(exception=None):
        """Close database session and rollback on error."""
        if exception:
            db_session.rollback()
        db_session.remove()


def create_all():
    """Create every table registered on the declarative Base."""
    # Import models so they are registered in Base.metadata
    import promoquote.models  # noqa: F401
    Base.metadata.create_all(bind=engine)


def drop_all():
    """Drop every table registered on the declarative Base."""
    import promoquote.models  # noqa: F401
    Base.metadata.drop_all(bind=engine)


def get_session():
    """Get database session."""
    return db_session
