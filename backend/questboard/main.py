"""FastAPI application entrypoint."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from questboard import obs
from questboard.api import ops
from questboard.api.errors import install_error_handlers
from questboard.infra import postgres
from questboard.obs import logging as obs_logging
from questboard.scheduling.api import router as scheduling_router
from questboard.settings import settings

logger = obs_logging.get_logger("questboard.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
	await postgres.init_pool()
	logger.info("startup", extra={"service": settings.service_name, "commit": settings.git_commit})
	try:
		yield
	finally:
		await postgres.close_pool()


def _allowed_origins() -> list[str]:
	allow_origins = list(getattr(settings, "cors_allow_origins", []))
	if not allow_origins:
		allow_origins = ["http://localhost:3000"] if settings.is_dev() else []
	# Starlette disallows wildcard '*' with allow_credentials=True.
	if "*" in allow_origins:
		allow_origins = ["http://localhost:3000", "http://127.0.0.1:3000"] if settings.is_dev() else []
	return allow_origins


app = FastAPI(title="Questboard Scheduling API", lifespan=lifespan)
install_error_handlers(app)
app.add_middleware(
	CORSMiddleware,
	allow_origins=_allowed_origins(),
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)
obs.init(app)

app.include_router(scheduling_router)
app.include_router(ops.router, tags=["ops"])
