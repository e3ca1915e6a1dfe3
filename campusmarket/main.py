import logging

from fastapi import FastAPI

from campusmarket.api.error_handlers import register_error_handlers
from campusmarket.api.v1.router import router as v1_router
from campusmarket.core.telemetry import setup_telemetry

logging.basicConfig(level=logging.INFO)

app = FastAPI(title="Campus Market API", version="0.1.0")

register_error_handlers(app)
setup_telemetry(app)
app.include_router(v1_router)
