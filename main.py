import json
import logging
from typing import Any, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import sessionmaker

from backup_export import export_backup
from backup_import import import_backup
from backup_validation import BackupPayloadError, BackupValidationError
from config import get_settings
from database import SessionLocal, tenant_scope
from services import BudgetService

logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Budget Backup")


def get_session_factory() -> sessionmaker:
    return SessionLocal


def current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    # set by the upstream authentication layer
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return x_user_id


def current_budget_id(
    user_id: str = Depends(current_user_id),
    session_factory: sessionmaker = Depends(get_session_factory),
) -> int:
    try:
        with tenant_scope(user_id, session_factory=session_factory) as tx:
            return BudgetService(tx, user_id).get_or_create_default().id
    except ValueError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc


async def read_backup_payload(request: Request) -> Any:
    """Read the request body as JSON, refusing it once it passes the size limit."""
    limit = get_settings().max_backup_bytes
    content_length = request.headers.get("content-length")
    if content_length is not None:
        try:
            declared = int(content_length)
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid Content-Length header") from None
        if declared > limit:
            raise HTTPException(status_code=413, detail="Backup payload too large")

    # chunked bodies carry no length, so count what actually arrives
    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > limit:
            raise HTTPException(status_code=413, detail="Backup payload too large")

    try:
        return json.loads(body)
    except ValueError:
        raise BackupPayloadError(
            "Request body must be a valid JSON backup payload"
        ) from None


@app.exception_handler(BackupValidationError)
async def backup_validation_error_handler(
    request: Request, exc: BackupValidationError
) -> JSONResponse:
    logger.warning(
        f"backup_validation_failed: path={request.url.path} code={exc.code} message={exc}"
    )
    return JSONResponse(status_code=400, content={"error": str(exc), "code": exc.code})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logging.exception(f"Unexpected error: path={request.url.path} method={request.method}")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "code": "INTERNAL_SERVER_ERROR"},
    )


@app.get("/api/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/api/backup/export")
def export_backup_route(
    user_id: str = Depends(current_user_id),
    budget_id: int = Depends(current_budget_id),
    session_factory: sessionmaker = Depends(get_session_factory),
) -> dict[str, Any]:
    with tenant_scope(user_id, budget_id, session_factory=session_factory) as tx:
        return export_backup(tx, user_id, budget_id)


@app.post("/api/backup/import", status_code=201)
def import_backup_route(
    payload: Any = Depends(read_backup_payload),
    user_id: str = Depends(current_user_id),
    budget_id: int = Depends(current_budget_id),
    session_factory: sessionmaker = Depends(get_session_factory),
) -> dict[str, int]:
    with tenant_scope(user_id, budget_id, session_factory=session_factory) as tx:
        summary = import_backup(tx, user_id, budget_id, payload)

    logging.info(
        f"backup_import_route: user_id={user_id} budget_id={budget_id} "
        f"transactions={summary.transactions}"
    )
    return summary.model_dump(by_alias=True)
