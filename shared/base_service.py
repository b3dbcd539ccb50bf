"""
Base service class for Access Exceptions Layer services.
"""

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from typing import Dict, Optional
import time
import os

from shared.config import ServiceConfig, get_config
from shared.logging import configure_logging, get_logger
from shared.metrics import get_metrics_collector
from shared.errors import ErrorResponse

# Dependency states that count as healthy; anything else degrades /health
HEALTHY_DEPENDENCY_STATES = frozenset({"ok", "configured"})


class BaseService:
    """FastAPI service skeleton: request timing, health, metrics and a last-resort error handler.

    Subclasses add their routes and override ``_check_dependencies`` to
    report each external dependency as a short state string.
    """

    def __init__(self, service_name: str, port: int, config: Optional[ServiceConfig] = None):
        self.service_name = service_name
        self.port = port
        self.config = config or get_config(service_name, port)
        self.logger = get_logger(service_name)
        self.metrics = get_metrics_collector(service_name)
        self._start_time = time.time()

        configure_logging(service_name, self.config.log_level)

        self.app = FastAPI(
            title=f"{self.service_name.title()} Service",
            description=f"Access Exceptions Layer - {self.service_name.title()} Service",
            version="1.0.0",
            docs_url="/docs" if self.config.env == "local" else None,
            redoc_url=None,
        )
        self._setup_request_timing()
        self._setup_health_routes()
        self._setup_error_handler()

    def _setup_request_timing(self):
        """Record every request in the HTTP metrics and the access log."""

        @self.app.middleware("http")
        async def record_request(request: Request, call_next):
            start_time = time.perf_counter()
            response = await call_next(request)
            duration = time.perf_counter() - start_time

            self.metrics.record_http_request(
                method=request.method,
                endpoint=request.url.path,
                status_code=response.status_code,
                duration=duration
            )
            self.logger.info(
                "HTTP request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration * 1000, 2)
            )
            return response

    def _setup_health_routes(self):
        """Set up /health and /metrics."""

        @self.app.get("/health")
        async def health_check():
            """Report ok only when every dependency is healthy."""
            try:
                dependencies = await self._check_dependencies()
            except Exception as e:
                self.logger.error("Health check failed", error=str(e))
                self.metrics.record_health_check("error")
                return JSONResponse(
                    status_code=503,
                    content={"service": self.service_name, "status": "error", "error": str(e)}
                )

            unhealthy = sorted(
                name for name, state in dependencies.items()
                if state not in HEALTHY_DEPENDENCY_STATES
            )
            status = "degraded" if unhealthy else "ok"
            self.metrics.record_health_check(status)

            return JSONResponse(
                status_code=503 if unhealthy else 200,
                content={
                    "service": self.service_name,
                    "status": status,
                    "uptime_seconds": time.time() - self._start_time,
                    "dependencies": dependencies,
                    "unhealthy": unhealthy,
                    "version": "1.0.0",
                    "commit": os.getenv("GIT_COMMIT", "unknown")
                }
            )

        @self.app.get("/metrics")
        async def metrics_endpoint():
            """Prometheus metrics endpoint."""
            return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    def _setup_error_handler(self):
        """Turn unexpected exceptions into a JSON 500."""

        @self.app.exception_handler(Exception)
        async def unhandled_exception_handler(request: Request, exc: Exception):
            self.logger.error("Unhandled exception", path=request.url.path, error=str(exc), exc_info=True)
            self.metrics.record_error("INTERNAL_ERROR")
            body = ErrorResponse(
                request_id=request.headers.get("x-request-id"),
                code="INTERNAL_ERROR",
                message="Internal server error"
            )
            return JSONResponse(status_code=500, content=body.model_dump())

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check service dependencies. Override in subclasses."""
        return {}

    def run(self):
        """Run the service."""
        import uvicorn
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower()
        )
