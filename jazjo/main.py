import logging
import os

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from jazjo.application.access import AccessGate
from jazjo.application.catalog import CatalogReader
from jazjo.application.lifecycle import OrderLifecycleManager
from jazjo.application.order_builder import OrderBuilder
from jazjo.application.panel import PanelReports
from jazjo.application.views import OrderViews
from jazjo.core.config import settings
from jazjo.core.errors import JazjoError
from jazjo.core.logging_config import setup_logging
from jazjo.interfaces import auth_api, orders_api, panel_api, paymongo_webhook, products_api
from jazjo.interfaces.body_limit import BodySizeLimitMiddleware
from jazjo.interfaces.dependencies import Services

logger = logging.getLogger(__name__)


# ---------------------------------------------------------
# COMPOSITION ROOT
# ---------------------------------------------------------

def build_services(products, orders, payments, profiles, gateway, auth, config=None) -> Services:
    """Wires the application services on top of whichever adapters were chosen."""
    config = config or settings
    catalog = CatalogReader(products, low_stock_limit=config.LOW_STOCK_LIMIT)
    views = OrderViews(orders, profiles)
    return Services(
        access=AccessGate(auth, profiles),
        catalog=catalog,
        builder=OrderBuilder(catalog, orders, payments, gateway, settings=config),
        lifecycle=OrderLifecycleManager(orders, products, payments),
        views=views,
        panel=PanelReports(views, catalog, orders, profiles, settings=config),
        profiles=profiles,
        gateway=gateway,
    )


def build_default_services(config=None) -> Services:
    """Supabase auth and PayMongo always; storage per STORE_BACKEND."""
    from jazjo.infrastructure.paymongo_gateway import PayMongoGateway
    from jazjo.infrastructure.supabase_auth import SupabaseAuthProvider
    from jazjo.infrastructure.supabase_client import SupabaseClient

    config = config or settings
    client = SupabaseClient()
    gateway = PayMongoGateway()
    auth = SupabaseAuthProvider(client)

    if config.STORE_BACKEND == "sql":
        from jazjo.infrastructure.database import Base, SessionLocal, engine
        from jazjo.infrastructure.repositories import sql_repositories as repos
        import jazjo.domain.models  # noqa: F401  registers the tables

        Base.metadata.create_all(bind=engine)
        logger.info("Using SQL store at %s", engine.url.render_as_string(hide_password=True))
        return build_services(
            repos.SqlProductRepository(SessionLocal),
            repos.SqlOrderRepository(SessionLocal),
            repos.SqlPaymentRepository(SessionLocal),
            repos.SqlProfileRepository(SessionLocal),
            gateway, auth, config,
        )

    from jazjo.infrastructure.repositories import supabase_repositories as repos

    logger.info("Using Supabase REST store at %s", config.SUPABASE_URL or "(unset)")
    return build_services(
        repos.SupabaseProductRepository(client),
        repos.SupabaseOrderRepository(client),
        repos.SupabasePaymentRepository(client),
        repos.SupabaseProfileRepository(client),
        gateway, auth, config,
    )


# ---------------------------------------------------------
# ERROR HANDLING
# ---------------------------------------------------------

async def handle_jazjo_error(request: Request, exc: JazjoError):
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path,
                     exc.message, exc_info=exc)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.client_message})


async def handle_request_validation(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    detail = errors[0].get("msg") if errors else "Invalid request."
    return JSONResponse(status_code=400, content={"error": detail})


async def handle_unexpected(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app(services: Services = None, config=None) -> FastAPI:
    config = config or settings
    app = FastAPI(title=config.PROJECT_NAME)
    app.state.services = services or build_default_services(config)

    app.add_middleware(BodySizeLimitMiddleware, max_bytes=config.MAX_BODY_BYTES)
    app.add_exception_handler(JazjoError, handle_jazjo_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    app.add_exception_handler(Exception, handle_unexpected)

    for router in (auth_api.router, products_api.router, orders_api.router,
                   panel_api.admin_router, panel_api.staff_router, paymongo_webhook.router):
        app.include_router(router, prefix="/api")

    # Static storefront, when deployed alongside the API.
    if os.path.isdir(config.STATIC_DIR):
        app.mount("/", StaticFiles(directory=config.STATIC_DIR, html=True), name="static")
    return app


def main():
    import uvicorn

    setup_logging(settings.LOG_LEVEL)
    logger.info("Jazjo server starting on port %s", settings.PORT)
    uvicorn.run(create_app(), host="0.0.0.0", port=settings.PORT)


if __name__ == "__main__":
    main()
