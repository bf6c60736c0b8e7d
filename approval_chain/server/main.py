"""
Main Application Entry Point.

This module initializes the FastAPI application, configures middleware (CORS),
registers exception handlers and includes all API routers.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from approval_chain.core.config import settings
from approval_chain.core.database import init_db
from approval_chain.core.logging_config import get_logger, setup_logging

from .api.v1 import approver_changes, decisions, health, subjects
from .core import constant
from .exception_handlers import setup_exception_handlers

setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifespan events.

    Handles startup and shutdown events for the FastAPI application.
    """
    logger.info("Starting up Approval Chain Server...")
    await init_db()
    logger.info("Database initialized successfully")

    yield

    logger.info("Shutting down Approval Chain Server...")


app = FastAPI(
    title=constant.PROJECT_NAME,
    description="""
    Approval Chain Server API

    Submit documents into a sequential approval chain, record approver decisions,
    override stuck chains as an administrator and hand steps to other approvers.
    """,
    version="1.0.0",
    openapi_url=f"{constant.API_V1_STR}/openapi.json",
    docs_url=f"{constant.API_V1_STR}/docs",
    redoc_url=f"{constant.API_V1_STR}/redoc",
    lifespan=lifespan,
)

cors = settings.cors
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors.origins,
    allow_credentials=cors.allow_credentials,
    allow_methods=cors.allow_methods,
    allow_headers=cors.allow_headers,
)

setup_exception_handlers(app)

app.include_router(health.router, tags=["health"])
app.include_router(subjects.router, prefix=f"{constant.API_V1_STR}/subjects", tags=["subjects"])
app.include_router(decisions.router, prefix=f"{constant.API_V1_STR}/subjects", tags=["decisions"])
app.include_router(approver_changes.router, prefix=constant.API_V1_STR, tags=["approver-changes"])
