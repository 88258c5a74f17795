"""FastAPI application factory."""
from fastapi import FastAPI

from idpsync.api.routes import integrations


def create_app() -> FastAPI:
    """Build and return the FastAPI app.

    The database is not touched here: the sync guard decides per request
    whether storage is usable.
    """
    app = FastAPI(
        title="IdP Sync API",
        description="Okta shadow sync trigger and run history",
        version="0.1.0",
    )

    app.include_router(integrations.router, prefix="/integrations", tags=["integrations"])

    return app


# Module-level app instance for uvicorn
app = create_app()
