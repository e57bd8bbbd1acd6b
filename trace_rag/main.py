"""FastAPI application: question answering plus background trace ingestion."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from . import config, services
from .routes import router

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


@asynccontextmanager
async def lifespan(app: FastAPI):
    services.get_scheduler().start()
    try:
        yield
    finally:
        services.shutdown()


app = FastAPI(title="Trace RAG", version="1.0.0", lifespan=lifespan)
app.include_router(router)
