"""Misan backend application factory."""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from misan.core.state import config
from misan.routers.account import router as account_router
from misan.routers.alert_rules import router as alert_rules_router
from misan.routers.settings import admin_router as settings_admin_router
from misan.routers.settings import router as settings_router

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="Misan", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors.allow_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(account_router)
app.include_router(settings_router)
app.include_router(settings_admin_router)
app.include_router(alert_rules_router)


@app.on_event("startup")
async def startup():
    LOGGER.info("Misan backend started (db=%s)", config.db_path)
