import logging
from fastapi import FastAPI

from rbac_console.api.policy_client import HttpClient
from rbac_console.config.settings import settings
from rbac_console.core.exception_handlers import register_exception_handlers
from rbac_console.core.middleware import install_middleware
from rbac_console.core.sessions import session_registry
from rbac_console.modules.health import routes as health_routes
from rbac_console.modules.rbac import routes as rbac_routes
from rbac_console.modules.tenant_rbac import routes as tenant_rbac_routes

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%SZ",
    )


async def on_startup():
    logger.info(f"{settings.app_name} starting ({settings.environment}), policy API at {settings.api_base_url}")


async def on_shutdown():
    logger.info(f"Dropping {len(session_registry)} console sessions")
    session_registry.clear()
    await HttpClient.aclose()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title=settings.app_name, debug=settings.debug, redirect_slashes=False)
    install_middleware(app)
    register_exception_handlers(app)

    app.include_router(health_routes.router)
    app.include_router(rbac_routes.router, prefix=API_PREFIX)
    app.include_router(tenant_rbac_routes.router, prefix=API_PREFIX)

    app.add_event_handler("startup", on_startup)
    app.add_event_handler("shutdown", on_shutdown)
    return app


app = create_app()
