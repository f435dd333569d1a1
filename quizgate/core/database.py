import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from quizgate.core.config import settings
from quizgate.core.errors import PersistenceError

logger = logging.getLogger(__name__)


def make_engine(url: Optional[str] = None, **kwargs) -> Engine:
    kwargs.setdefault("echo", settings.DATABASE_ECHO)
    kwargs.setdefault("pool_pre_ping", settings.DATABASE_POOL_PRE_PING)
    return create_engine(url or settings.DATABASE_URL, **kwargs)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create tables if they don't exist. Use migrations in production."""
    from quizgate.models.orm import Base
    Base.metadata.create_all(engine)


@contextmanager
def session_scope(factory: sessionmaker) -> Iterator[Session]:
    """Transactional scope: commit on success, roll back on any error.

    SQLAlchemy failures surface as PersistenceError so callers can tell
    storage trouble apart from domain outcomes.
    """
    db = factory()
    try:
        yield db
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Persistence failure: {e}")
        raise PersistenceError(str(e)) from e
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
