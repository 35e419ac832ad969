"""FastAPI app for the squares pool API."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

import config
from squares.models.base import init_db
from web.api.auth_routes import router as auth_router
from web.api.responses import CORS_ALLOW_HEADERS, CORS_ALLOW_METHODS, install_error_handlers
from web.api.routes import router as api_router

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    yield


app = FastAPI(title="Squares Pool API", lifespan=lifespan)

install_error_handlers(app)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=CORS_ALLOW_METHODS,
    allow_headers=CORS_ALLOW_HEADERS,
)
app.include_router(auth_router)
app.include_router(api_router)
