"""
Exceptions service for the Access Exceptions Layer.
"""

from typing import Optional

from fastapi import Query, Request
from fastapi.responses import HTMLResponse

from shared.background import BackgroundTaskRegistry
from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.logging import clear_context, set_request_id, set_rule_context

from .adapters.rule_store_client import RuleStoreClient
from .adapters.tracking_store_client import TrackingStoreClient
from .coaching.page import render_coaching_page
from .grants.service import ExceptionGrantService
from .sweep.scheduler import SweepScheduler
from .sweep.sweeper import ExceptionSweeper


class ExceptionsService(BaseService):
    """Exceptions service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        rule_store: Optional[RuleStoreClient] = None,
        tracking_store: Optional[TrackingStoreClient] = None,
    ):
        super().__init__("exceptions", 8013, config=config or get_config("exceptions", 8013))

        self.rule_store = rule_store or RuleStoreClient.from_config(self.config)
        self.tracking_store = tracking_store or TrackingStoreClient.from_config(self.config)
        self.background = BackgroundTaskRegistry("exceptions")

        self.grant_service = ExceptionGrantService(
            self.rule_store,
            self.tracking_store,
            background=self.background,
            metrics=self.metrics,
        )
        self.sweeper = ExceptionSweeper(
            self.rule_store,
            self.tracking_store,
            max_concurrency=self.config.sweep_concurrency,
            metrics=self.metrics,
        )
        self.scheduler = SweepScheduler(self.sweeper, self.config.sweep_interval_seconds)

        @self.app.on_event("startup")
        async def _startup():
            await self.start()

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.stop()

        self._setup_exceptions_routes()

    def _setup_exceptions_routes(self):
        """Set up exceptions-specific routes."""

        @self.app.get("/", response_class=HTMLResponse)
        async def coaching_page(
            request: Request,
            cf_user_email: Optional[str] = Query(None, description="Identity that triggered the policy"),
            cf_site_uri: Optional[str] = Query(None, description="Site the user was trying to reach"),
            cf_rule_id: Optional[str] = Query(None, description="Gateway rule that logged the request"),
        ):
            """Grant an exception for the requesting identity and show the coaching page."""
            set_request_id(request.headers.get("x-request-id"))
            set_rule_context(cf_rule_id)
            try:
                result = await self.grant_service.grant(cf_rule_id, cf_user_email)
                if cf_rule_id:
                    self.logger.info(
                        "Exception grant processed",
                        rule_update_status=result.rule_update_status,
                        tracking_status=result.tracking_status
                    )

                html = render_coaching_page(
                    user_email=cf_user_email,
                    site_uri=cf_site_uri,
                    request_url=str(request.url),
                    query_params=request.query_params.multi_items(),
                    rule_id=cf_rule_id,
                    rule_update_status=result.rule_update_status,
                    tracking_status=result.tracking_status,
                )
                return HTMLResponse(content=html)
            finally:
                clear_context()

    async def _check_dependencies(self):
        """Check exceptions service dependencies."""
        dependencies = {}

        try:
            if await self.tracking_store.health_check():
                dependencies["redis"] = "ok"
            else:
                dependencies["redis"] = "error"
        except Exception:
            dependencies["redis"] = "error"

        dependencies["rule_store"] = "configured" if self.rule_store.is_configured else "not_configured"

        return dependencies

    async def start(self):
        """Start exceptions service components."""
        if self.tracking_store.is_configured:
            await self.tracking_store.start()
        else:
            self.logger.warning("Tracking store not configured; grants and sweeps will be skipped")

        if self.config.sweep_enabled:
            await self.scheduler.start()

        self.logger.info("Exceptions service started", sweep_enabled=self.config.sweep_enabled)

    async def stop(self):
        """Stop exceptions service components."""
        await self.scheduler.stop()
        await self.background.drain()
        await self.tracking_store.stop()

        self.logger.info("Exceptions service stopped")


def create_app():
    """Create exceptions service application."""
    service = ExceptionsService()
    return service.app


if __name__ == "__main__":
    service = ExceptionsService()
    service.run()
