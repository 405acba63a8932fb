import logging

from fastapi import FastAPI

from model_library import __version__
from model_library.api.repository_api import router as repository_router
from model_library.core.dependencies import get_settings, resolve_repository_root

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


app = FastAPI(
    title="Model Library Repository",
    version=__version__,
    description="Serves a folder-backed model library repository over HTTP.",
)

app.include_router(repository_router, tags=["repository"])


@app.on_event("startup")
async def startup_event() -> None:
    """
    Apply the configured log level and report which folder is served.
    """
    settings = get_settings()
    logging.getLogger().setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    logger.info(f"Serving model library repository at {resolve_repository_root(settings)}")


@app.get("/health")
async def health() -> dict:
    """
    Lightweight health check endpoint.
    """
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "model_library.main:app",
        host="0.0.0.0",
        port=8000,
    )
