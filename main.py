from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from db_models import IdentifyRequest, IdentifyResponse
from db_setup import ContactDatabase
from errors import ReconciliationError
from identity_resolver import IdentityResolver
from logging_config import configure_logging, get_logger
from response_assembler import assemble
from settings import Settings, get_settings

logger = get_logger(__name__)

router = APIRouter()


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    # uvicorn has installed its handlers by the time the app starts up
    configure_logging(settings.log_level)
    database = ContactDatabase(settings.database_path, busy_timeout=settings.busy_timeout)
    database.connect()
    app.state.database = database
    try:
        yield
    finally:
        logger.info("service.shutdown")
        database.close()


def get_database(request: Request) -> ContactDatabase:
    return request.app.state.database


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


@router.get("/")
async def root():
    return {
        "message": "Bitespeed Identity Reconciliation Service",
        "version": "1.0.0",
        "endpoints": {
            "identify": {
                "method": "POST",
                "path": "/identify",
                "description": "Identify and reconcile contact information",
            }
        },
    }


@router.post("/identify", response_model=IdentifyResponse)
def identify(
    request: IdentifyRequest,
    database: ContactDatabase = Depends(get_database),
    settings: Settings = Depends(get_app_settings),
):
    with database.transaction(timeout=settings.transaction_timeout) as repository:
        outcome = IdentityResolver(repository).resolve(request.email, request.phoneNumber)

    return IdentifyResponse(contact=assemble(outcome))


async def reconciliation_error_handler(request: Request, exc: ReconciliationError):
    if exc.status_code >= 500:
        logger.error(
            "identify.failed",
            error_type=type(exc).__name__,
            error=str(exc),
            path=request.url.path,
            exc_info=exc,
        )
    else:
        logger.info("identify.rejected", error=str(exc), path=request.url.path)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.public_message})


async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.info("identify.rejected", error="invalid request body", path=request.url.path)
    return JSONResponse(status_code=400, content={"error": "Invalid request body"})


async def unexpected_error_handler(request: Request, exc: Exception):
    logger.error("request.failed", error_type=type(exc).__name__, path=request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title="Bitespeed Contact Reconciliation API",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ReconciliationError, reconciliation_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
