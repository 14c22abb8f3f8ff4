import logging

import stripe
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from finvisor.api.v1.api import api_router
from finvisor.core.config import settings
from finvisor.core.errors import (
    ConfigurationError,
    CreditsExhaustedError,
    FormValidationError,
    NotFoundError,
    PermissionDeniedError,
    QueryError,
    QueryTimeoutError,
    WebhookError,
    report_error,
)
from finvisor.db.mongo import close_mongo_connection, connect_to_mongo
from finvisor.services.filter_store import JsonFileStorage

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)

stripe.api_key = settings.STRIPE_SECRET_KEY

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.PROJECT_VERSION,
    description=settings.DESCRIPTION
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.preferences_storage = JsonFileStorage(settings.FILTERS_STORAGE_PATH)
app.state.preferences_key = settings.FILTERS_STORAGE_KEY

app.add_event_handler("startup", connect_to_mongo)
app.add_event_handler("shutdown", close_mongo_connection)


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": message})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return _error_response(404, exc.message)

@app.exception_handler(QueryTimeoutError)
async def timeout_handler(request: Request, exc: QueryTimeoutError):
    report_error(exc, request.url.path)
    return _error_response(504, exc.message)

@app.exception_handler(QueryError)
async def query_error_handler(request: Request, exc: QueryError):
    report_error(exc, request.url.path)
    return _error_response(502, exc.message)

@app.exception_handler(FormValidationError)
async def form_error_handler(request: Request, exc: FormValidationError):
    return _error_response(422, exc.message)

@app.exception_handler(WebhookError)
async def webhook_error_handler(request: Request, exc: WebhookError):
    report_error(exc, request.url.path)
    # Upstream 4xx other than a bad request are gateway failures
    status_code = 400 if exc.status_code == 400 else 502
    return _error_response(status_code, exc.message)

@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    report_error(exc, request.url.path)
    return _error_response(500, exc.message)

@app.exception_handler(CreditsExhaustedError)
async def credits_error_handler(request: Request, exc: CreditsExhaustedError):
    return _error_response(403, exc.message)

@app.exception_handler(PermissionDeniedError)
async def permission_error_handler(request: Request, exc: PermissionDeniedError):
    return _error_response(403, exc.message)


@app.get("/")
async def root():
    return {"message": "Welcome to Finvisor API"}

app.include_router(api_router, prefix=settings.API_V1_STR)
