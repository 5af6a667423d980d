"""Storage service API built with FastAPI.

This module exposes the storefront's storage functions over HTTP:
table-like entities (customers, products, orders), product image blobs,
the order-document file share and the order intake queue. Validation is
performed with Pydantic models; persistence is delegated to the
SQLAlchemy-backed repositories. Repositories return ``Ok``/``Err`` values
and every ``Err`` is rendered by ``results.error_response``.
"""

import base64
import binascii
import time
import uuid

from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from blobs import BlobRepo
from db import engine, init_db, utcnow
from logs import get_logger
from queues import QueueRepo
from repo import (
    CUSTOMER_REF,
    CUSTOMER_TABLE,
    ORDER_TABLE,
    PRODUCT_REF,
    PRODUCT_TABLE,
    EntityRepo,
    delete_unreferenced,
    has_referencing_orders,
    new_row_key,
)
from results import Err, ErrorKind, error_response
from schemas import BlobUploadIn, CustomerIn, EntityIn, FileUploadAutoIn, FileUploadIn, OrderIn, ProductIn
from shares import DEFAULT_DIRECTORY, ShareRepo

app = FastAPI(title="Storage Service")

logger = get_logger("storage.api")


@app.on_event("startup")
def _startup_db():
    # wait briefly until the DB accepts connections
    deadline = time.time() + 30
    while True:
        try:
            with engine.connect() as conn:
                conn.execute(text("select 1"))
            break
        except SQLAlchemyError:
            if time.time() > deadline:
                raise
            time.sleep(1)
    init_db()


@app.exception_handler(RequestValidationError)
async def _validation_error(_request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"{where}: {first.get('msg', 'invalid value')}" if where else first.get("msg", "invalid request")
    return error_response(Err(ErrorKind.VALIDATION, message))


@app.exception_handler(SQLAlchemyError)
async def _storage_error(_request: Request, exc: SQLAlchemyError):
    logger.error("storage failure", exc_info=exc)
    return error_response(Err(ErrorKind.STORAGE, "Storage error"))


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = rid
    try:
        response = await call_next(request)
    finally:
        logger.info("request handled", extra={"request_id": rid, "path": request.url.path, "method": request.method})
    response.headers["X-Request-ID"] = rid
    return response


@app.get("/health")
def health():
    """Liveness and health check endpoint.

    Returns:
        dict: A small JSON payload indicating service health.
    """
    return {"ok": True}


# ---- Entities ----

def _entity_router(prefix: str, table: str, model: type[EntityIn], label: str, ref_field: str | None = None) -> APIRouter:
    """Build list/get/create/update/delete routes for one entity table.

    Args:
        prefix: URL prefix, e.g. ``/customers``.
        table: Entity table and default partition key.
        model: Pydantic model validating request bodies.
        label: Human-readable name used in response messages.
        ref_field: Order field referencing this table. When given, deletes
            go through the integrity guard and a ``hasorders`` route is added.
    """
    router = APIRouter(prefix=prefix)
    entities = EntityRepo(table)

    @router.get("")
    def list_entities():
        items = [e.to_dict() for e in entities.list()]
        logger.info("entities listed", extra={"table": table, "count": len(items)})
        return items

    if ref_field:
        @router.get("/{row_key}/hasorders")
        def has_orders(row_key: str):
            return {"has_orders": has_referencing_orders(row_key, ref_field)}

    @router.get("/{partition_key}/{row_key}")
    def get_entity(partition_key: str, row_key: str):
        result = entities.get(partition_key, row_key)
        if isinstance(result, Err):
            return error_response(result)
        return result.value.to_dict()

    @router.post("")
    def create_entity(payload: model):
        properties = payload.properties()
        if table == ORDER_TABLE:
            properties["order_date"] = utcnow().isoformat()
        result = entities.insert(
            payload.partition_key or table,
            payload.row_key or new_row_key(),
            properties,
        )
        if isinstance(result, Err):
            return error_response(result)
        return {"message": f"{label} created successfully", "id": result.value.row_key}

    @router.put("")
    def update_entity(payload: model):
        if not payload.partition_key or not payload.row_key:
            return error_response(Err(ErrorKind.VALIDATION, f"Invalid {label.lower()} identifiers"))
        result = entities.replace(payload.partition_key, payload.row_key, payload.properties())
        if isinstance(result, Err):
            return error_response(result)
        return {"message": f"{label} updated successfully"}

    @router.delete("/{partition_key}/{row_key}")
    def delete_entity(partition_key: str, row_key: str):
        if ref_field:
            result = delete_unreferenced(table, partition_key, row_key, ref_field)
        else:
            result = entities.delete(partition_key, row_key)
        if isinstance(result, Err):
            return error_response(result)
        return {"message": f"{label} deleted successfully"}

    return router


app.include_router(_entity_router("/customers", CUSTOMER_TABLE, CustomerIn, "Customer", CUSTOMER_REF))
app.include_router(_entity_router("/products", PRODUCT_TABLE, ProductIn, "Product", PRODUCT_REF))
app.include_router(_entity_router("/orders", ORDER_TABLE, OrderIn, "Order"))


# ---- Blobs ----

blobs = BlobRepo()


def _decode(data: str):
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        return None


@app.post("/blob/upload")
def upload_blob(payload: BlobUploadIn):
    data = _decode(payload.base64_data)
    if data is None:
        return error_response(Err(ErrorKind.VALIDATION, "Invalid base64 data format"))
    result = blobs.upload(data, payload.file_name)
    if isinstance(result, Err):
        return error_response(result)
    return {"message": "Blob uploaded successfully", "file_name": payload.file_name, "blob_url": result.value}


@app.get("/blob/{container}/{name}")
def get_blob(container: str, name: str):
    if container != blobs.container:
        return error_response(Err(ErrorKind.NOT_FOUND, "Blob not found"))
    result = blobs.get(name)
    if isinstance(result, Err):
        return error_response(result)
    return Response(content=result.value.data, media_type=result.value.content_type)


@app.delete("/blob/delete/{blob_uri:path}")
def delete_blob(blob_uri: str):
    result = blobs.delete(blob_uri)
    if isinstance(result, Err):
        return error_response(result)
    return {"message": "Blob deleted successfully", "blob_uri": result.value}


# ---- File share ----

shares = ShareRepo()


def _store_file(directory: str, file_name: str, base64_data: str):
    data = _decode(base64_data)
    if data is None:
        return error_response(Err(ErrorKind.VALIDATION, "Invalid base64 data format"))
    result = shares.upload(directory, file_name, data)
    if isinstance(result, Err):
        return error_response(result)
    return {
        "message": "File uploaded successfully",
        "directory_name": directory,
        "file_name": file_name,
        "file_size": result.value.size,
    }


@app.post("/files/upload/{directory}/{file_name}")
def upload_file(directory: str, file_name: str, payload: FileUploadIn):
    return _store_file(directory, file_name, payload.base64_data)


@app.post("/files/upload")
def upload_file_auto_directory(payload: FileUploadAutoIn):
    return _store_file(payload.directory_name or DEFAULT_DIRECTORY, payload.file_name, payload.base64_data)


@app.get("/files/download/{directory}/{file_name}")
def download_file(directory: str, file_name: str):
    result = shares.download(directory, file_name)
    if isinstance(result, Err):
        return error_response(result)
    return {
        "message": "File downloaded successfully",
        "directory_name": directory,
        "file_name": file_name,
        "base64_data": base64.b64encode(result.value).decode("ascii"),
        "file_size": len(result.value),
    }


@app.get("/files/list/{directory}")
def list_files(directory: str):
    files = [f.to_dict() for f in shares.iter_files(directory)]
    return {
        "message": "Files listed successfully",
        "directory_name": directory,
        "files": files,
        "count": len(files),
    }


@app.get("/files/info/{directory}")
def file_info(directory: str):
    files = list(shares.iter_files(directory))
    latest = max(files, key=lambda f: f.last_modified) if files else None
    return {
        "message": "File information retrieved successfully",
        "directory_name": directory,
        "file_count": len(files),
        "total_size": sum(f.size for f in files),
        "latest_file": latest.name if latest else None,
        "files": [f.to_dict() for f in files],
    }


@app.delete("/files/delete/{directory}/{file_name}")
def delete_file(directory: str, file_name: str):
    result = shares.delete(directory, file_name)
    if isinstance(result, Err):
        return error_response(result)
    return {"message": "File deleted successfully", "directory_name": directory, "file_name": file_name}


# ---- Order intake queue ----

order_queue = QueueRepo()


@app.post("/queue/orders")
async def queue_order(request: Request):
    """Put the raw request body on the order queue as-is."""
    try:
        body = (await request.body()).decode("utf-8")
    except UnicodeDecodeError:
        return error_response(Err(ErrorKind.VALIDATION, "Message body must be valid UTF-8 text"))
    logger.info("order received for queueing", extra={"size": len(body)})
    result = order_queue.enqueue(body)
    if isinstance(result, Err):
        return error_response(result)
    return JSONResponse({"message": "Order queued successfully"})
