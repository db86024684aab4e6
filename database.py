import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from config import get_settings

logger = logging.getLogger(__name__)


def create_database_engine(database_url: str) -> Engine:
    connect_args: dict[str, object] = {}
    engine_args: dict[str, object] = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        if ":memory:" in database_url:
            # every session must see the same in-memory database
            engine_args["poolclass"] = StaticPool

    eng = create_engine(database_url, connect_args=connect_args, **engine_args)
    if database_url.startswith("sqlite"):
        event.listen(eng, "connect", _enable_sqlite_pragmas)
    return eng


def _enable_sqlite_pragmas(dbapi_conn, _record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


engine = create_database_engine(get_settings().database_url)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


_SCOPE_TOKEN = object()


class _SessionHandle:
    """Narrow view of a session that cannot end its own transaction."""

    def __init__(self, session: Session, token: object) -> None:
        if token is not _SCOPE_TOKEN:
            raise TypeError(
                f"{type(self).__name__} can only be obtained from its scope context manager"
            )
        self._session = session

    @property
    def dialect_name(self) -> str:
        return self._session.get_bind().dialect.name

    def execute(self, statement, params=None, **kwargs: Any):
        return self._session.execute(statement, params, **kwargs)

    def scalars(self, statement, params=None, **kwargs: Any):
        return self._session.scalars(statement, params, **kwargs)

    def scalar(self, statement, params=None, **kwargs: Any):
        return self._session.scalar(statement, params, **kwargs)

    def get(self, entity, ident):
        return self._session.get(entity, ident)

    def add(self, instance) -> None:
        self._session.add(instance)

    def add_all(self, instances) -> None:
        self._session.add_all(instances)

    def flush(self) -> None:
        self._session.flush()


class TenantScopedSession(_SessionHandle):
    """Handle bound to one tenant's row-level-security context.

    Only ``tenant_scope`` hands these out; request code and the backup
    services never see a bare ``Session``.
    """

    def __init__(
        self,
        session: Session,
        user_id: str,
        budget_id: Optional[int],
        token: object,
    ) -> None:
        super().__init__(session, token)
        self.user_id = user_id
        self.budget_id = budget_id

    def __repr__(self) -> str:
        return f"<TenantScopedSession user_id={self.user_id} budget_id={self.budget_id}>"


class UnscopedSession(_SessionHandle):
    """Handle for maintenance jobs that deliberately bypass tenant scoping."""

    def __repr__(self) -> str:
        return "<UnscopedSession>"


def ensure_tenant_scope(
    tx: object, user_id: str, budget_id: Optional[int]
) -> TenantScopedSession:
    if not isinstance(tx, TenantScopedSession):
        raise TypeError(
            f"Expected a TenantScopedSession, got {type(tx).__name__}"
        )
    if tx.user_id != user_id or tx.budget_id != budget_id:
        raise ValueError("Database handle is scoped to a different tenant")
    return tx


def _bind_tenant(tx: TenantScopedSession) -> None:
    if tx.dialect_name != "postgresql":
        return
    tx.execute(
        text("select set_config('app.user_id', :user_id, true)"),
        {"user_id": str(tx.user_id)},
    )
    if tx.budget_id is not None:
        tx.execute(
            text("select set_config('app.budget_id', :budget_id, true)"),
            {"budget_id": str(tx.budget_id)},
        )


@contextmanager
def tenant_scope(
    user_id: str,
    budget_id: Optional[int] = None,
    *,
    session_factory: Optional[sessionmaker] = None,
) -> Iterator[TenantScopedSession]:
    session: Session = (session_factory or SessionLocal)()
    try:
        tx = TenantScopedSession(session, user_id, budget_id, _SCOPE_TOKEN)
        _bind_tenant(tx)
        yield tx
        session.commit()
    except Exception:
        logger.error(
            f"Error in tenant context transaction: user_id={user_id} budget_id={budget_id}"
        )
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def unscoped_scope(
    *, session_factory: Optional[sessionmaker] = None
) -> Iterator[UnscopedSession]:
    session: Session = (session_factory or SessionLocal)()
    logger.info("Opening unscoped database session")
    try:
        yield UnscopedSession(session, _SCOPE_TOKEN)
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
