from fastapi import FastAPI, Request, status, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import logging

from app.core.config import settings
from app.api.health import router as health_router
from app.core.headers.errors import PolicyValidationError
from app.core.headers.loader import build_header_policy, load_policy_config
from app.core.schemas.errors import ErrorResponse, ErrorDetail, ErrorSource, ErrorMeta
from app.core.middleware.security_headers import ProtectedHeadersMiddleware, SecurityHeadersMiddleware
from app.core.middleware.request_id_middleware import RequestIDMiddleware
from app.core.logging_config import setup_logging
from app.core.request_context import get_request_id

# Set up structured logging
setup_logging()

logger = logging.getLogger(__name__)

# An invalid policy must stop the service from starting rather than serve unprotected responses
try:
    header_policy = build_header_policy(load_policy_config(settings))
except PolicyValidationError as e:
    logger.critical(f"Security header policy is invalid, refusing to start: {e}")
    raise

app = FastAPI(
    title=settings.APP_NAME,
    debug=settings.DEBUG_MODE,
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
    docs_url=f"{settings.API_V1_PREFIX}/docs",
    redoc_url=f"{settings.API_V1_PREFIX}/redoc",
)
app.state.header_policy = header_policy

# Set up middlewares (the last one added is the outermost)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[str(origin) for origin in settings.CORS_ALLOWED_ORIGINS],  # Handles Pydantic AnyUrl
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)

# Security headers wrap CORS so preflight responses carry them too
app.add_middleware(SecurityHeadersMiddleware, policy=header_policy)

# Request ID sits outside the header policy so policy errors are logged with it
app.add_middleware(RequestIDMiddleware)

# Must stay outermost: restores protected headers changed by any middleware above
app.add_middleware(ProtectedHeadersMiddleware)


# Custom exception handlers
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Custom handler for Pydantic's RequestValidationError to fit the standard error format.
    """
    field_errors = {}
    for error in exc.errors():
        # Extract field name from location tuple (skipping body, query, or path)
        location_tuple = error.get("loc", ())
        if len(location_tuple) > 1:
            field_key = ".".join(str(loc_part) for loc_part in location_tuple[1:])
        elif len(location_tuple) == 1:
            field_key = str(location_tuple[0])
        else:
            field_key = "unknown_field"
        field_errors.setdefault(field_key, []).append(error["msg"])

    # Determine source pointer or parameter
    first_error_loc = exc.errors()[0].get("loc") if exc.errors() else None
    source_pointer = None
    source_parameter = None
    if first_error_loc:
        if first_error_loc[0] == 'body':
            source_pointer = "/" + "/".join(str(loc) for loc in first_error_loc)
        elif first_error_loc[0] in ('query', 'path'):
            source_parameter = str(first_error_loc[1]) if len(first_error_loc) > 1 else str(first_error_loc[0])

    error_detail = ErrorDetail(
        status=str(status.HTTP_422_UNPROCESSABLE_ENTITY),
        code="validation_error",
        detail="One or more validation errors occurred. Please check the 'field_errors' for details.",
        source=ErrorSource(pointer=source_pointer, parameter=source_parameter) if (source_pointer or source_parameter) else None,
        meta=ErrorMeta(field_errors=field_errors, request_id=get_request_id())
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=ErrorResponse(errors=[error_detail]).model_dump(exclude_none=True),
    )

@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """
    Custom handler for HTTPException to fit the standard error format.
    """
    allowed_methods = None
    if exc.status_code == 405 and exc.headers and "allow" in exc.headers:
        allowed_methods = exc.headers["allow"].split(", ")

    error_detail = ErrorDetail(
        status=str(exc.status_code),
        code=getattr(exc, "error_code", "http_exception"),
        detail=str(exc.detail),
        meta=ErrorMeta(allowed_methods=allowed_methods, request_id=get_request_id()),
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(errors=[error_detail]).model_dump(exclude_none=True),
        headers=getattr(exc, "headers", None),
    )

@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """
    Generic exception handler for all unhandled exceptions to provide a consistent error response.

    Starlette renders this response outside the middleware stack, so the
    security header policy is applied here directly.
    """
    logger.exception(f"Unhandled exception: {str(exc)}")

    error_detail = ErrorDetail(
        status=str(status.HTTP_500_INTERNAL_SERVER_ERROR),
        code="internal_server_error",
        detail="An unexpected internal server error occurred.",
        meta=ErrorMeta(request_id=get_request_id()),
    )

    effective = request.app.state.header_policy.effective_for(request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(errors=[error_detail]).model_dump(exclude_none=True),
        headers=dict(effective.items()),
    )

# Application startup event
@app.on_event("startup")
async def on_startup():
    """Report the security header policy the service starts with."""
    snapshot = app.state.header_policy.snapshot
    logger.info(
        f"Serving with security headers {', '.join(snapshot.store.names()) or '(none)'} "
        f"and {len(snapshot.routes)} route overrides"
    )

# Include routers
app.include_router(health_router, prefix=settings.API_V1_PREFIX)

@app.get("/")
async def root():
    """Root endpoint that points to the API documentation."""
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "documentation": f"{settings.API_V1_PREFIX}/docs"
    }
