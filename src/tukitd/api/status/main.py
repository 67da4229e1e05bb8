"""
Status API application factory

Read-only HTTP view of the daemon (health, locked transactions). Served
by uvicorn on the daemon's own event loop through APIServerWrapper.
"""

from fastapi import FastAPI

from tukitd import __version__
from tukitd.api.status.routes import system
from tukitd.utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.API)


def create_app(
    title: str = "tukitd status",
    version: str = __version__,
    docs_enabled: bool = False
) -> FastAPI:
    """
    Create the status API application.

    Args:
        title: API title (shown in docs)
        version: API version
        docs_enabled: Expose /docs and /openapi.json
    """
    app = FastAPI(
        title=title,
        description="Read-only status of the transactional-update daemon",
        version=version,
        docs_url="/docs" if docs_enabled else None,
        redoc_url=None,
        openapi_url="/openapi.json" if docs_enabled else None
    )

    app.include_router(system.router)

    log.debug("Status API created", routes="/system/health, /system/transactions")
    return app
