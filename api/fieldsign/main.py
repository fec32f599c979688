import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from .config import LOG_LEVEL
from .db import init_db
from .errors import PageOutOfRangeError, StorageError, ValidationFailed
from .routers import documents, fields, signers, signing
from .storage import ObjectNotFound

logging.basicConfig(
    level=LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Field Signing API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.on_event("startup")
def on_startup():
    init_db()

@app.exception_handler(PageOutOfRangeError)
def page_out_of_range(request: Request, exc: PageOutOfRangeError):
    return JSONResponse(status_code=422, content={
        "detail": str(exc),
        "field_id": str(exc.field_id),
        "page_number": exc.page_number,
        "page_count": exc.page_count,
    })

@app.exception_handler(ValidationFailed)
def validation_failed(request: Request, exc: ValidationFailed):
    return JSONResponse(status_code=422, content={
        "detail": str(exc),
        "errors": {fid: [e.model_dump() for e in errs] for fid, errs in exc.errors.items()},
    })

@app.exception_handler(StorageError)
def storage_failed(request: Request, exc: StorageError):
    if isinstance(exc, ObjectNotFound):
        return JSONResponse(status_code=404, content={"detail": "stored file missing for this document"})
    logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=502, content={"detail": str(exc)})

app.include_router(documents.router, prefix="/api/documents", tags=["documents"])
app.include_router(fields.router, prefix="/api/documents", tags=["fields"])
app.include_router(signers.router, prefix="/api/documents", tags=["signers"])
app.include_router(signing.router, prefix="/api/sign", tags=["signing"])

@app.get("/")
def root():
    return {"ok": True, "service": "fieldsign-api"}
