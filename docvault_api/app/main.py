from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from loguru import logger

from docvault_api.app.composition import create_app_dependencies
from docvault_api.app.config.settings import Settings
from docvault_api.app.core import SERVICE_NAME
from docvault_api.app.routers.documents import documents_router
from docvault_api.app.routers.health import health_router
from docvault_api.app.routers.monitoring import monitoring_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.bind(service_name=SERVICE_NAME, event="api_starting").info("")
    deps = create_app_dependencies()
    await deps.connect()
    app.state.settings = deps.settings
    app.state.publisher = deps.publisher
    # readiness pings and job lookups share the store
    app.state.database = deps.document_store
    app.state.document_reader = deps.document_store
    app.state.stuck_task_recovery = deps.stuck_task_recovery
    app.state.queue_monitor = deps.queue_monitor
    try:
        yield
    finally:
        logger.bind(service_name=SERVICE_NAME, event="api_stopping").info("")
        await deps.close()


app = FastAPI(
    title="DocVault Processing Monitor API",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health_router)
app.include_router(monitoring_router)
app.include_router(documents_router)


def run() -> None:
    settings = Settings()
    uvicorn.run("docvault_api.app.main:app", host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    run()
