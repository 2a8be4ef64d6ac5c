"""ASGI entry point for the tiered router API."""

from tiered_router.api.app import create_app
from tiered_router.config import settings
from tiered_router.logging import configure_logging

configure_logging(settings)
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "tiered_router.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True,
    )
