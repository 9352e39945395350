import logging
import os
import time
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException

if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv()

from habitledger import __version__
from habitledger.api import challenges, friends, health, obligations, penalties, tasks
from habitledger.core.config import settings
from habitledger.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from habitledger.core.logging import LOGGER_NAME, configure_logging
from habitledger.core.middleware.request_id import RequestIdMiddleware
from habitledger.core.validation import validate_env

configure_logging(settings.ENV, settings.LOG_LEVEL)
validate_env()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger(LOGGER_NAME)
    logger.info("Starting habitledger...")
    app.state.startup_time = time.time()
    try:
        yield
    finally:
        logger.info("Stopping habitledger...")


app = FastAPI(title="habitledger", version=__version__, lifespan=lifespan)

app.add_middleware(RequestIdMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(HTTPException, http_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.include_router(tasks.router, tags=["tasks"])
app.include_router(challenges.router, tags=["challenges"])
app.include_router(obligations.router, tags=["obligations"])
app.include_router(penalties.router, tags=["penalties"])
app.include_router(friends.router, tags=["friends"])
app.include_router(health.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("habitledger.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
