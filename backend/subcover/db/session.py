from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from subcover.core.config import get_settings

settings = get_settings()

_engine_options: dict = {"pool_pre_ping": True}
if settings.database_url.startswith("sqlite"):
    _engine_options["connect_args"] = {"check_same_thread": False}
    # An in-memory database only exists on the connection that created it.
    if settings.database_url.rstrip("/").endswith(("sqlite:", "pysqlite:")) or ":memory:" in settings.database_url:
        _engine_options["poolclass"] = StaticPool

engine = create_engine(settings.database_url, **_engine_options)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def shares_single_connection(bind) -> bool:
    """True when every session on ``bind`` runs over one shared DBAPI connection.

    Such an engine is only safe from a single thread, so it cannot host the
    background escalation scheduler next to request handlers.
    """
    return isinstance(bind.pool, StaticPool)
