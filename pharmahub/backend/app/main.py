# backend/app/main.py
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import asyncio
import contextlib
import time
import uuid

from app.core.config import settings
from app.core.exceptions import AppError
from app.core.logging import logger
from app.db.connection_router import registry
from app.db.database import init_db, close_db, async_session_local
from app.api.v1.router import api_router
from app.services.plan_service import PlanService
from app.services.payment.gateway_config import gateway_settings_cache


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting PharmaHub billing API")
    await init_db()
    async with async_session_local() as session:
        await PlanService(session).seed_default_plans()
        await gateway_settings_cache.reload(session)

    eviction_task = asyncio.create_task(registry.run_eviction_loop())

    yield

    # Shutdown
    logger.info("Shutting down PharmaHub billing API")
    eviction_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await eviction_task
    await registry.dispose_all()
    await close_db()


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    docs_url=("/api/docs" if settings.ENVIRONMENT == "development" else None),
    redoc_url=("/api/redoc" if settings.ENVIRONMENT == "development" else None),
    lifespan=lifespan
)

# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[str(origin) for origin in settings.BACKEND_CORS_ORIGINS],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request timing middleware
@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    return response


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Tag every request so its log lines can be correlated"""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# Include routers
app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "version": settings.VERSION,
        "environment": settings.ENVIRONMENT,
        "tenant_handles": len(registry.refcounts()),
    }


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """Domain errors carry their own status code and machine-readable code"""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        f"{exc.code}: {exc.message}",
        extra={"request_id": getattr(request.state, "request_id", None), "path": request.url.path},
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler"""
    logger.exception("Unhandled exception while handling request", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )
