"""
FastAPI application exposing the document store.

GET /status             store reachability (503 when unreachable)
GET /index              collection and index metadata
GET /documents          stored snapshots, newest first (limit, skip, base)
GET /documents/{key}    one snapshot by identity key
GET /count              number of stored snapshots

The routes are pass-through: every answer comes straight from the sink
backend, store errors are mapped to HTTP 503.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse

from fx_stream.db.base_backend import SinkBackend
from fx_stream.errors import SinkError
from fx_stream.utils.logger import get_logger

LOGGER = get_logger(__name__)

router = APIRouter(tags=["rates"])


def get_backend(request: Request) -> SinkBackend:
    return request.app.state.backend


def _unavailable(exc: SinkError) -> HTTPException:
    LOGGER.warning("Store query failed: %s", exc)
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))


@router.get("/status")
def store_status(backend: SinkBackend = Depends(get_backend)) -> JSONResponse:
    reachable = backend.ping()
    body = {
        "status": "ok" if reachable else "unavailable",
        "store": getattr(backend, "collection_name", None),
    }
    code = status.HTTP_200_OK if reachable else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=code, content=body)


@router.get("/index")
def index_metadata(backend: SinkBackend = Depends(get_backend)) -> dict[str, Any]:
    try:
        return backend.index_info()
    except SinkError as exc:
        raise _unavailable(exc) from exc


@router.get("/documents")
def list_documents(
    limit: int = Query(100, ge=1, le=1000),
    skip: int = Query(0, ge=0),
    base: str | None = Query(None, min_length=1),
    backend: SinkBackend = Depends(get_backend),
) -> dict[str, Any]:
    try:
        documents = backend.fetch(limit=limit, skip=skip, base=base)
    except SinkError as exc:
        raise _unavailable(exc) from exc
    return {"count": len(documents), "documents": documents}


@router.get("/documents/{key}")
def get_document(key: str, backend: SinkBackend = Depends(get_backend)) -> dict[str, Any]:
    try:
        document = backend.get(key)
    except SinkError as exc:
        raise _unavailable(exc) from exc
    if document is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No snapshot {key}")
    return document


@router.get("/count")
def count_documents(backend: SinkBackend = Depends(get_backend)) -> dict[str, int]:
    try:
        return {"count": backend.count()}
    except SinkError as exc:
        raise _unavailable(exc) from exc


def create_app(backend: SinkBackend) -> FastAPI:
    """Build the query API bound to ``backend``."""

    app = FastAPI(title="fx-stream", summary="Stored exchange-rate snapshots")
    app.state.backend = backend
    app.include_router(router)
    return app


__all__ = ["create_app", "router", "get_backend"]
