import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

from bookstore import schema
from bookstore.config import settings
from bookstore.crud import CrudEngine, CrudResult
from bookstore.database import Database
from bookstore.errors import (
    CrudError,
    RecordNotFound,
    UnknownTable,
    ValidationFailed,
)

logger = logging.getLogger(__name__)


class MessageModel(BaseModel):
    message: str
    rows_affected: int = 0


class HealthModel(BaseModel):
    status: str
    timestamp: str
    db: bool
    version: str


def _http_error(error: CrudError) -> HTTPException:
    """Map a catalog error onto the HTTP status the client sees."""
    if isinstance(error, RecordNotFound):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, ValidationFailed):
        return HTTPException(status_code=400, detail={"message": "Validation failed.", "errors": error.field_errors})
    return HTTPException(status_code=400, detail=str(error))


def _check_table(table: str) -> None:
    # Reject unknown tables before reading the request body.
    try:
        schema.resolve(table)
    except UnknownTable:
        raise HTTPException(status_code=400, detail="Invalid table name.") from None


async def _read_fields(request: Request, table: str) -> Dict[str, Any]:
    """Collect the submitted values for the table's declared columns.

    Form bodies are the primary format; a JSON object is accepted too. Keys
    that are not columns of the table are ignored. Column values must be
    scalars: lists, objects and file uploads are rejected.
    """
    columns = schema.resolve(table).columns
    if request.headers.get("content-type", "").startswith("application/json"):
        try:
            payload = await request.json()
        except ValueError:
            raise HTTPException(status_code=400, detail="Request body is not valid JSON.") from None
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Request body must be a JSON object.")
        items = payload.items()
    else:
        form = await request.form()
        items = form.multi_items()

    fields: Dict[str, Any] = {}
    errors: Dict[str, str] = {}
    for key, value in items:
        if key not in columns:
            continue
        if key in fields or key in errors:
            errors[key] = "Field was given more than once."
        elif value is not None and not isinstance(value, (str, int, float, bool)):
            errors[key] = "Field must be a single text, number or boolean value."
        else:
            fields[key] = value
    if errors:
        raise _http_error(ValidationFailed(errors))
    return fields


def _acknowledge(result: CrudResult, verb: str) -> MessageModel:
    return MessageModel(message=f"Record {verb} in {result.table}.", rows_affected=result.rows_affected)


def create_app(engine: Optional[CrudEngine] = None) -> FastAPI:
    """Build the API. Without an injected engine the store is opened at startup
    and closed at shutdown; an injected engine stays owned by the caller.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db: Optional[Database] = None
        if engine is None:
            # StoreConnectionError propagates and aborts startup.
            db = Database.open(settings.database_file)
            app.state.engine = CrudEngine(db)
        else:
            app.state.engine = engine
        logger.info(f"{settings.app_name} API started")
        try:
            yield
        finally:
            if db is not None:
                db.close()
            logger.info(f"{settings.app_name} API stopped")

    app = FastAPI(title=f"{settings.app_name} API", version=settings.app_version, lifespan=lifespan)
    if engine is not None:
        app.state.engine = engine

    def get_engine(request: Request) -> CrudEngine:
        return request.app.state.engine

    # --- Health check ---
    @app.get("/health", response_model=HealthModel)
    def health(crud: CrudEngine = Depends(get_engine)):
        ping = getattr(crud.store, "ping", None)
        return HealthModel(
            status="healthy",
            timestamp=datetime.now(timezone.utc).isoformat(),
            db=bool(ping()) if callable(ping) else True,
            version=settings.app_version,
        )

    # --- Catalog ---
    @app.get("/api/tables", response_model=List[str])
    def list_tables():
        return schema.table_names()

    @app.get("/api/{table}")
    def select_all(table: str, crud: CrudEngine = Depends(get_engine)) -> List[List[Any]]:
        _check_table(table)
        try:
            return crud.select_all(table).rows
        except CrudError as e:
            raise _http_error(e) from e

    @app.post("/api/{table}", response_model=MessageModel)
    async def insert(table: str, request: Request, crud: CrudEngine = Depends(get_engine)):
        _check_table(table)
        fields = await _read_fields(request, table)
        try:
            result = await run_in_threadpool(crud.insert, table, fields)
        except CrudError as e:
            raise _http_error(e) from e
        return _acknowledge(result, "created")

    @app.put("/api/{table}/{record_id}", response_model=MessageModel)
    async def update(table: str, record_id: str, request: Request, crud: CrudEngine = Depends(get_engine)):
        _check_table(table)
        fields = await _read_fields(request, table)
        try:
            result = await run_in_threadpool(crud.update, table, record_id, fields)
        except CrudError as e:
            raise _http_error(e) from e
        return _acknowledge(result, "updated")

    @app.delete("/api/{table}/{record_id}", response_model=MessageModel)
    def delete(table: str, record_id: str, crud: CrudEngine = Depends(get_engine)):
        _check_table(table)
        try:
            result = crud.delete(table, record_id)
        except CrudError as e:
            raise _http_error(e) from e
        return _acknowledge(result, "deleted")

    # Static front page, mounted last so the API routes win.
    if os.path.isdir(settings.static_dir):
        app.mount("/", StaticFiles(directory=settings.static_dir, html=True), name="static")

    return app


app = create_app()
