"""aiohttp application entrypoint."""
from __future__ import annotations

from pathlib import Path

from aiohttp import web

from backend_common.aiohttp_app import add_cors_to_routes, add_healthcheck, create_base_app
from backend_common.db.migrations import create_migration_runner
from backend_common.db.pool import create_pool_hooks
from backend_common.logging_config import configure_logging

from webhook_service.api.router import setup_routes
from webhook_service.otel import setup_otel, shutdown_otel
from webhook_service.runtime import RUNTIME_KEY, WebhookRuntime, start_runtime, stop_runtime
from webhook_service.services.dependencies import TENANT_ID_HEADER
from webhook_service.settings import settings
from webhook_service.workers import start_background_worker, stop_background_worker

configure_logging(settings.log_level)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"


def create_app(runtime: WebhookRuntime | None = None) -> web.Application:
    """Build the application.

    With *runtime* the app serves that pre-built engine and skips the
    database lifecycle (pool, migrations, queue consumer, maintenance worker).
    """
    app, cors = create_base_app(
        settings,
        extra_allowed_headers=(TENANT_ID_HEADER,),
        context_headers=((TENANT_ID_HEADER, "tenant_id"),),
    )

    add_healthcheck(app, settings)
    setup_routes(app)
    setup_otel(app)

    if runtime is not None:
        app[RUNTIME_KEY] = runtime
    else:
        init_pool_hook, close_pool_hook = create_pool_hooks(settings)
        app.on_startup.append(init_pool_hook)
        app.on_startup.append(create_migration_runner(settings, MIGRATIONS_DIR))
        app.on_startup.append(start_runtime)
        if settings.webhook_scheduler_backend == "database":
            app.on_startup.append(start_background_worker)
            app.on_cleanup.append(stop_background_worker)
        app.on_cleanup.append(stop_runtime)
        app.on_cleanup.append(close_pool_hook)
    app.on_cleanup.append(shutdown_otel)

    add_cors_to_routes(app, cors)
    return app


def main() -> None:
    web.run_app(create_app(), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
