# storefront/data/database.py
from contextlib import contextmanager
from typing import Callable, Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from storefront.utils.settings import DATABASE_URL
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, pool_pre_ping=True, connect_args=_connect_args)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

Base = declarative_base()


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


_DEPTH_KEY = "tx_depth"
_AFTER_COMMIT_KEY = "after_commit"


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """
    Zakres transakcji: commit przy normalnym wyjsciu, rollback przy kazdym wyjatku.
    Zagniezdzone bloki dolaczaja do zewnetrznego - commit robi tylko najbardziej
    zewnetrzny blok, on_commit callbacki odpalane sa dopiero po nim.
    """
    depth = db.info.get(_DEPTH_KEY, 0)
    db.info[_DEPTH_KEY] = depth + 1
    try:
        yield db
        if depth == 0:
            db.commit()
    except Exception:
        if depth == 0:
            db.rollback()
            db.info.pop(_AFTER_COMMIT_KEY, None)
        raise
    finally:
        db.info[_DEPTH_KEY] = depth

    if depth == 0:
        _run_after_commit(db)


def in_transaction(db: Session) -> bool:
    return db.info.get(_DEPTH_KEY, 0) > 0


def on_commit(db: Session, callback: Callable[[], None]) -> None:
    """Rejestruje akcje zewnetrzna (notyfikacja, gateway) do wykonania po commicie."""
    if not in_transaction(db):
        _safe_call(callback)
        return
    db.info.setdefault(_AFTER_COMMIT_KEY, []).append(callback)


def _run_after_commit(db: Session) -> None:
    callbacks = db.info.pop(_AFTER_COMMIT_KEY, [])
    for callback in callbacks:
        _safe_call(callback)


def _safe_call(callback: Callable[[], None]) -> None:
    # blad po commicie nie moze cofnac stanu finansowego, tylko ostrzezenie
    try:
        callback()
    except Exception as e:
        logger.warning(f"After-commit action {getattr(callback, '__name__', callback)} failed: {e}")
