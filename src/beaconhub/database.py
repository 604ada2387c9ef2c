"""Database setup and session management."""

import logging
from collections.abc import Generator
from pathlib import Path

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, SQLModel, create_engine

from beaconhub.config import settings
from beaconhub.errors import ConflictError, StoreError

logger = logging.getLogger(__name__)


def _connect_args(url: str) -> dict[str, object]:
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


_url = settings.get_database_url()
engine = create_engine(_url, echo=False, connect_args=_connect_args(_url))


def init_db() -> None:
    """Create all tables."""
    # Import models to register them with SQLModel before create_all()
    import beaconhub.audit  # noqa: F401
    import beaconhub.beacons.models  # noqa: F401
    import beaconhub.presence.models  # noqa: F401
    import beaconhub.users.models  # noqa: F401

    if engine.url.get_backend_name() == "sqlite" and engine.url.database:
        Path(engine.url.database).parent.mkdir(parents=True, exist_ok=True)
    SQLModel.metadata.create_all(engine)


def get_session() -> Generator[Session, None, None]:
    """Yield a database session for FastAPI Depends()."""
    with Session(engine) as session:
        yield session


def commit(session: Session) -> None:
    """Commit the session, translating driver failures into beaconhub errors.

    The session is rolled back before the error propagates so it stays usable.
    """
    try:
        session.commit()
    except IntegrityError as e:
        session.rollback()
        logger.warning("Constraint violation: %s", e.orig)
        raise ConflictError("Conflicting update, please retry") from e
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception("Database commit failed")
        raise StoreError("Internal server error") from e
