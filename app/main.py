import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from app.api import leads, payments
from app.api.dependencies import Services, build_services
from app.core.logging import new_request_id, setup_logging
from app.jobs.scheduler_service import build_scheduler, start_scheduler, stop_scheduler, is_healthy as scheduler_healthy
from app.services.config_manager import Settings, get_settings
from app.services.prometheus_metrics import SERVICE_HEALTH

logger = logging.getLogger(__name__)

STARTED_AT = time.time()


def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    settings = settings or get_settings()
    services = services or build_services(settings)

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Lead sync, payments and result notifications for the quiz funnel",
        version=settings.VERSION
    )
    app.state.services = services

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Idempotency-Key", "X-Signature", "X-Request-Id", "X-Approval-Secret"],
    )

    # Mount Prometheus metrics
    app.mount("/metrics", make_asgi_app())

    app.include_router(leads.router)
    app.include_router(leads.form_router)
    app.include_router(payments.router)

    @app.on_event("startup")
    async def startup_event():
        """Start the scheduled sheet sync."""
        if settings.ENABLE_SHEET_SYNC and services.sheets.is_configured:
            services.scheduler = build_scheduler(services.lead_sync, settings.SHEET_SYNC_INTERVAL_MINUTES)
            start_scheduler(services.scheduler)
            services.scheduler_started_at = datetime.now(timezone.utc)
        else:
            logger.info("Scheduled sheet sync disabled")
        logger.info("Application startup complete")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Cleanup on shutdown."""
        try:
            stop_scheduler(services.scheduler)
            await services.close()
            logger.info("Application shutdown complete")
        except Exception as e:
            logger.error(f"Error during shutdown: {str(e)}")

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "OK",
            "message": "Backend Teste de Prosperidade funcionando!",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": settings.VERSION,
        }

    @app.get("/status")
    async def status_check():
        """Detailed status of the service and its integrations."""
        checks = {
            "scheduler": scheduler_healthy(
                services.scheduler,
                services.lead_sync,
                settings.SHEET_SYNC_INTERVAL_MINUTES,
                started_at=services.scheduler_started_at,
            ),
        }
        # Only configured integrations are checked
        if services.sheets.is_configured:
            checks["google_sheets"] = await asyncio.to_thread(services.sheets.is_healthy)
        if settings.supabase_enabled:
            checks["supabase"] = await services.store.is_connected()
        for service, ok in checks.items():
            SERVICE_HEALTH.labels(service=service).set(1 if ok else 0)

        uptime = int(time.time() - STARTED_AT)
        report = services.lead_sync.last_report
        return {
            "status": "OK" if all(checks.values()) else "DEGRADED",
            "service": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "environment": settings.ENVIRONMENT,
            "uptime": f"{uptime // 60}m {uptime % 60}s",
            "features": {
                "lead_sync": services.sheets.is_configured,
                "scheduled_sync": services.scheduler is not None and services.scheduler.running,
                "payments": services.gateway.is_configured,
                "webhook_signature": bool(settings.MERCADOPAGO_WEBHOOK_SECRET),
                "whatsapp": services.whatsapp.enabled,
                "pushover": services.pushover.is_configured,
            },
            "checks": checks,
            "last_sync": report.to_dict() if report else None,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/api/environment")
    async def environment():
        """Which integrations are configured, never their values."""
        return {
            "environment": settings.ENVIRONMENT,
            "port": settings.PORT,
            "base_url": settings.BASE_URL or f"http://localhost:{settings.PORT}",
            "configured": {
                "supabase": settings.supabase_enabled,
                "google_sheets": settings.sheets_enabled,
                "mercadopago_access_token": bool(settings.MERCADOPAGO_ACCESS_TOKEN),
                "mercadopago_public_key": bool(settings.MERCADOPAGO_PUBLIC_KEY),
                "mercadopago_webhook_secret": bool(settings.MERCADOPAGO_WEBHOOK_SECRET),
                "whatsapp": settings.whatsapp_enabled,
                "pushover": settings.pushover_enabled,
            },
        }

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler."""
        logger.error(f"Unhandled exception on {request.method} {request.url.path}: {str(exc)}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "request_id": request.headers.get("x-request-id", "unknown"),
            }
        )

    # Request ID and timing middleware
    @app.middleware("http")
    async def add_request_context(request: Request, call_next):
        request_id = new_request_id(request.headers.get("x-request-id"))
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = str(process_time)
        response.headers["X-Request-Id"] = request_id
        logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({process_time:.3f}s)")
        return response

    return app


def get_app() -> FastAPI:
    """Application factory for uvicorn --factory."""
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)
    settings.validate_optional_settings()
    settings.log_configuration()
    return create_app(settings)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:get_app",
        factory=True,
        host="0.0.0.0",
        port=get_settings().PORT,
    )
