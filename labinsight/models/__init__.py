# labinsight/models/__init__.py
from labinsight.db.session import Base, engine, SessionLocal

# Import model modules so SQLAlchemy registers all mappers.
from . import session  # noqa: F401
from . import document  # noqa: F401
from . import parameter  # noqa: F401
from . import risk_assessment  # noqa: F401


def init_db() -> None:
    """Create tables if they don't exist."""
    Base.metadata.create_all(bind=engine)
