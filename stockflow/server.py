"""FastAPI server exposing stock requests, production records and store stock.

Actor identity is read from ``X-Actor-*`` headers set by the
authentication gateway in front of this service.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from functools import lru_cache
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .models.catalog import Actor
from .models.production_record import ApprovalStatus
from .models.stock_request import StockRequestStatus
from .services.operations import StockflowOperations
from .utils.config import get_config
from .utils.exceptions import (
    AuthenticationError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    RecordStoreError,
    StockflowError,
    ValidationError,
)
from .utils.logger import get_logger

config = get_config()
logger = get_logger("server")

ERROR_STATUS_CODES = {
    ValidationError: 422,
    InvalidStateError: 409,
    ConflictError: 409,
    NotFoundError: 404,
    RecordStoreError: 502,
    AuthenticationError: 502,
}


@lru_cache()
def get_operations() -> StockflowOperations:
    """Shared operations facade; overridden in tests."""
    return StockflowOperations()


def get_actor(
    x_actor_id: Optional[str] = Header(default=None),
    x_actor_name: str = Header(default=""),
    x_actor_role: str = Header(default=""),
    x_actor_store_id: Optional[str] = Header(default=None),
    x_actor_production_house_id: Optional[str] = Header(default=None),
) -> Actor:
    """Build the acting user from gateway headers."""
    if not x_actor_id:
        raise HTTPException(status_code=401, detail="Missing X-Actor-Id header")
    return Actor(
        id=x_actor_id,
        name=x_actor_name,
        role=x_actor_role,
        store_id=x_actor_store_id,
        production_house_id=x_actor_production_house_id,
    )


# ------------------------------------------------------------------
# Request bodies
# ------------------------------------------------------------------

class StockRequestIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    store_id: str = Field(alias="storeId")
    quantities: Dict[str, Any]


class FulfillmentIn(BaseModel):
    quantities: Dict[str, Any]
    notes: Optional[str] = None


class ProductionRecordIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    production_house_id: str = Field(alias="productionHouseId")
    date: str
    breakdown: Dict[str, Any]
    wastage: Optional[Dict[str, Any]] = None


# ------------------------------------------------------------------
# Lifespan
# ------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage startup / shutdown of the application."""
    logger.info("=" * 60)
    logger.info("Stockflow API Server Starting")
    logger.info("=" * 60)
    logger.info(f"Environment:          {config.env.environment}")
    logger.info(f"Port:                 {config.env.port}")
    logger.info(f"Record store:         {config.env.record_store_backend}")
    logger.info("=" * 60)

    yield

    if get_operations.cache_info().currsize:
        close = getattr(get_operations().store, "close", None)
        if close:
            close()
    logger.info("API server shut down.")


# ------------------------------------------------------------------
# FastAPI app
# ------------------------------------------------------------------

app = FastAPI(
    title="Stockflow API",
    description="Stock requests, production approvals and store stock estimates",
    version="1.0.0",
    lifespan=lifespan,
)


@app.get("/health")
def health_check():
    """Health check endpoint for the platform and monitoring."""
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "environment": config.env.environment
    }


# ------------------------------------------------------------------
# Stock requests
# ------------------------------------------------------------------

@app.post("/stock-requests", status_code=201)
def create_stock_request(
    body: StockRequestIn,
    actor: Actor = Depends(get_actor),
    ops: StockflowOperations = Depends(get_operations),
):
    return ops.create_stock_request(actor, body.store_id, body.quantities).to_dict()


@app.post("/stock-requests/{request_id}/fulfill")
def fulfill_stock_request(
    request_id: str,
    body: FulfillmentIn,
    actor: Actor = Depends(get_actor),
    ops: StockflowOperations = Depends(get_operations),
):
    return ops.fulfill_stock_request(actor, request_id, body.quantities, body.notes).to_dict()


@app.post("/stock-requests/{request_id}/cancel")
def cancel_stock_request(
    request_id: str,
    actor: Actor = Depends(get_actor),
    ops: StockflowOperations = Depends(get_operations),
):
    return ops.cancel_stock_request(actor, request_id).to_dict()


@app.get("/stock-requests")
def list_stock_requests(
    store_id: Optional[str] = Query(default=None, alias="storeId"),
    production_house_id: Optional[str] = Query(default=None, alias="productionHouseId"),
    status: Optional[StockRequestStatus] = None,
    ops: StockflowOperations = Depends(get_operations),
):
    requests = ops.list_stock_requests(store_id, production_house_id, status)
    return {"stockRequests": [r.to_dict() for r in requests]}


# ------------------------------------------------------------------
# Production records
# ------------------------------------------------------------------

@app.post("/production-records", status_code=201)
def submit_production_record(
    body: ProductionRecordIn,
    actor: Actor = Depends(get_actor),
    ops: StockflowOperations = Depends(get_operations),
):
    record = ops.submit_production_record(
        actor, body.production_house_id, body.date, body.breakdown, body.wastage
    )
    return record.to_dict()


@app.post("/production-records/{record_id}/approve")
def approve_production_record(
    record_id: str,
    actor: Actor = Depends(get_actor),
    ops: StockflowOperations = Depends(get_operations),
):
    return ops.approve_production_record(actor, record_id).to_dict()


@app.get("/production-records/duplicates")
def find_duplicate_production_records(ops: StockflowOperations = Depends(get_operations)):
    return {"duplicates": ops.find_duplicate_production_records()}


@app.get("/production-records")
def list_production_records(
    production_house_id: Optional[str] = Query(default=None, alias="productionHouseId"),
    status: Optional[ApprovalStatus] = None,
    ops: StockflowOperations = Depends(get_operations),
):
    records = ops.list_production_records(production_house_id, status)
    return {"productionRecords": [r.to_dict() for r in records]}


# ------------------------------------------------------------------
# Store stock
# ------------------------------------------------------------------

@app.get("/stores/{store_id}/stock-estimate")
def store_stock_estimate(store_id: str, ops: StockflowOperations = Depends(get_operations)):
    return ops.estimate_store_stock(store_id).to_dict()


# ------------------------------------------------------------------
# Exception handlers
# ------------------------------------------------------------------

@app.exception_handler(StockflowError)
async def stockflow_exception_handler(request: Request, exc: StockflowError):
    """Map domain errors to HTTP status codes."""
    status_code = ERROR_STATUS_CODES.get(type(exc), 500)
    logger.warning(f"HTTP {status_code} on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.kind, "message": exc.message}
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Report malformed bodies in the same shape as domain validation errors."""
    problems = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
    )
    return JSONResponse(
        status_code=422,
        content={"error": ValidationError.__name__, "message": problems}
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Custom HTTP exception handler."""
    logger.warning(f"HTTP {exc.status_code}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": "HTTPError", "message": exc.detail}
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """General exception handler for unexpected errors."""
    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "InternalError",
            "message": str(exc) if not config.is_production else "An error occurred"
        }
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "stockflow.server:app",
        host="0.0.0.0",
        port=config.env.port,
        reload=not config.is_production
    )
