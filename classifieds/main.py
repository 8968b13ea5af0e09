import logging

from fastapi import FastAPI

from classifieds.api.v1.router import router as v1_router
from classifieds.core.config import settings
from classifieds.core.telemetry import setup_telemetry

logging.basicConfig(level=settings.log_level)

app = FastAPI(title="Classifieds API", version="0.1.0")

setup_telemetry(app)
app.include_router(v1_router)
