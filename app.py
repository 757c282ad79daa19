# app.py - FastAPI server for the credit applications table
import logging
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import uvicorn
from fastapi import Body, Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

import db
import operations
import schemas
from config import load_settings
from errors import ApiError, StoreError

SERVICE_NAME = "DB2 Credit Applications API"
VERSION = "1.0.0"

settings = load_settings()

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger("credit-api")

engine = db.create_store_engine(settings)
store = db.StoreConnector(engine, settings)

app = FastAPI(title=SERVICE_NAME, version=VERSION)
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def startup_event():
    logger.info("=" * 40)
    logger.info("%s listening on port %s", SERVICE_NAME, settings.port)
    logger.info("Database: %s", settings.safe_url)
    logger.info("Schema: %s  Table: %s", settings.db_schema, settings.db_table)
    logger.info("=" * 40)


@app.on_event("shutdown")
def shutdown_event():
    engine.dispose()
    logger.info("[SHUTDOWN] store engine disposed")


# Dependency
def get_store():
    return store


def _ok(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {"success": True, **payload}


def _error_response(status_code: int, message: str, details=None, exc: Exception = None):
    content = {"success": False, "error": message}
    content.update(details or {})
    if exc is not None and settings.is_development:
        content["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return JSONResponse(status_code=status_code, content=jsonable_encoder(content))


# ============================================
# error handlers
# ============================================

@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    if isinstance(exc, StoreError):
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc)
        return _error_response(exc.status_code, exc.message, exc.details, exc)
    return _error_response(exc.status_code, exc.message, exc.details)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        return _error_response(
            404, "Endpoint not found", {"path": request.url.path, "method": request.method}
        )
    return _error_response(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        loc = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
        msg = first.get("msg") or message
        message = f"{'.'.join(loc)}: {msg}" if loc else str(msg)
    return _error_response(400, message)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_response(500, "Internal server error", exc=exc)


# ============================================
# health & connection
# ============================================

@app.get("/health")
def health():
    return {
        "status": "OK",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": SERVICE_NAME,
        "version": VERSION,
    }


@app.get("/api/db2/test")
def db2_test(store: db.StoreConnector = Depends(get_store)):
    try:
        return _ok(operations.probe_connection(store))
    except StoreError as e:
        e.details.update(
            hint="Check your DB2 credentials in .env file",
            connection_string=store.settings.safe_url,
        )
        raise


@app.get("/api/db2/info")
def db2_info(store: db.StoreConnector = Depends(get_store)):
    return _ok(operations.database_info(store))


# ============================================
# reads
# ============================================

@app.get("/api/applications")
def list_applications(
    status: Optional[str] = None,
    customer_id: Optional[str] = None,
    product_code: Optional[str] = None,
    min_amount: Optional[str] = None,
    max_amount: Optional[str] = None,
    limit: Optional[str] = None,
    offset: Optional[str] = None,
    store: db.StoreConnector = Depends(get_store),
):
    return _ok(
        operations.list_applications(
            store,
            status=status,
            customer_id=customer_id,
            product_code=product_code,
            min_amount=min_amount,
            max_amount=max_amount,
            limit=limit,
            offset=offset,
        )
    )


@app.get("/api/application/{app_ref}")
def get_application(app_ref: str, store: db.StoreConnector = Depends(get_store)):
    return _ok(operations.get_application(store, app_ref))


@app.get("/api/customer/{cis_number}/applications")
def customer_applications(cis_number: str, store: db.StoreConnector = Depends(get_store)):
    return _ok(operations.get_customer_applications(store, cis_number))


@app.get("/api/customer/{cis_number}/summary")
def customer_summary(cis_number: str, store: db.StoreConnector = Depends(get_store)):
    return _ok(operations.get_customer_summary(store, cis_number))


@app.get("/api/search")
def search(query: Optional[str] = None, store: db.StoreConnector = Depends(get_store)):
    return _ok(operations.search_applications(store, query))


# ============================================
# writes
# ============================================

@app.post("/api/application", status_code=201)
def create_application(
    payload: Dict[str, Any] = Body(...), store: db.StoreConnector = Depends(get_store)
):
    logger.info("/api/application called; keys=%s", list(payload.keys()))
    return _ok(operations.create_application(store, payload))


@app.patch("/api/application/{app_ref}/status")
def update_status(
    app_ref: str,
    body: schemas.StatusUpdateIn,
    store: db.StoreConnector = Depends(get_store),
):
    return _ok(operations.update_status(store, app_ref, body.status, body.reason))


@app.put("/api/application/{app_ref}")
def update_application(
    app_ref: str,
    updates: Dict[str, Any] = Body(...),
    store: db.StoreConnector = Depends(get_store),
):
    return _ok(operations.update_fields(store, app_ref, updates))


@app.delete("/api/application/{app_ref}")
def delete_application(app_ref: str, store: db.StoreConnector = Depends(get_store)):
    return _ok(operations.delete_application(store, app_ref))


# ============================================
# statistics
# ============================================

@app.get("/api/stats/overview")
def stats_overview(store: db.StoreConnector = Depends(get_store)):
    return _ok(operations.stats_overview(store))


@app.get("/api/stats/by-status")
def stats_by_status(store: db.StoreConnector = Depends(get_store)):
    return _ok(operations.stats_by_status(store))


@app.get("/api/stats/by-product")
def stats_by_product(store: db.StoreConnector = Depends(get_store)):
    return _ok(operations.stats_by_product(store))


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
