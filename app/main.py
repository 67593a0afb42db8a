# app/main.py
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from motor.motor_asyncio import AsyncIOMotorClient
from starlette.exceptions import HTTPException

from app.routers import admin, documents, requests
from app.core.config import Settings, settings as default_settings
from app.core.logger import logger
from app.db.mongo import create_mongo_client, get_database, verify_mongodb_connection
from app.db.requests_store import RequestStore
from app.services.pdf_generator import DocumentGenerator
from app.utils.responses import format_error_response


def create_app(
    settings: Optional[Settings] = None,
    mongo_client: Optional[AsyncIOMotorClient] = None,
    document_generator: Optional[DocumentGenerator] = None,
) -> FastAPI:
    """Build the API. A client passed in stays open; one built here is closed on shutdown."""
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_client = mongo_client is None
        client = create_mongo_client(settings) if owns_client else mongo_client
        if owns_client and not await verify_mongodb_connection(client):
            client.close()
            raise RuntimeError(f"MongoDB is unreachable at startup (database: {settings.MONGODB_DB})")

        store = RequestStore(get_database(client, settings))
        await store.ensure_indexes()

        app.state.mongo_client = client
        app.state.store = store
        try:
            yield
        finally:
            if owns_client:
                client.close()

    app = FastAPI(
        title="Portal Cereri Medic de Familie",
        version="0.1.0",
        description="Enrollment and referral requests between patients and their family doctor",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.document_generator = document_generator or DocumentGenerator(settings.TIMEZONE)

    # ✅ CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ✅ Health check
    @app.get("/", tags=["root"], summary="Health check")
    async def root():
        return {"status": "ok", "service": "Portal Cereri"}

    # ✅ Error handlers
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
        return JSONResponse(
            status_code=exc.status_code,
            content=format_error_response(exc, status_code=exc.status_code),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content=format_error_response(exc, status_code=422, detail=jsonable_errors(exc)),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=500,
            content=format_error_response(exc),
        )

    # ✅ Routes
    app.include_router(requests.router)
    app.include_router(documents.router)
    app.include_router(admin.router)

    return app


def jsonable_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]


app = create_app()
