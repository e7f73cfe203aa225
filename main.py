"""
Application entry point for the Education Pathway Advisor backend.

Design choices:
- Mounts the recommendation router using a configurable prefix from core.config Settings.
- Keeps a basic liveness route and the in-memory metrics summary at the root.
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import get_settings
from core.logging_config import configure_logging
from api.v1.routes import router as v1_router
from middleware import PIIRedactionMiddleware, create_pii_middleware_config
from services.metrics_service import get_metrics_collector

_settings = get_settings()

# Configure structured logging
configure_logging(_settings.log_level)

app = FastAPI(title="Education Pathway Advisor - Backend", version="0.1.0")

app.add_middleware(PIIRedactionMiddleware, config=create_pii_middleware_config())
app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
async def root():
    return {"message": "Server running"}


@app.get("/performance")
async def performance():
    """Returns pipeline latency and success metrics."""
    return get_metrics_collector().summary()


# Mount versioned API routers
app.include_router(v1_router, prefix=_settings.api_prefix)
