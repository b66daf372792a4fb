from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ll97_retrofit.config import settings
from ll97_retrofit.api.routes import router

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="LL97 Retrofit Engine",
    description=(
        "Estimate the energy, Local Law 97 and financial impact of replacing "
        "gas-heat PTAC units with electric PTHP units in NYC buildings."
    ),
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins + ["http://localhost:8000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


@app.get("/")
async def root():
    return {
        "name": "LL97 Retrofit Engine",
        "version": "1.0.0",
        "endpoints": {
            "api_docs": "/docs",
            "health": "/health",
            "create": "POST /api/v1/calculations",
            "get_or_compute": "GET /api/v1/calculations/{id}",
            "override": "PUT /api/v1/calculations/{id}",
            "ll97": "GET /api/v1/calculations/{id}/ll97",
            "flat": "GET /api/v1/calculations/{id}/flat",
        },
    }


@app.get("/health")
async def health():
    """Health check with dependency status."""
    status = {"status": "healthy", "version": "1.0.0"}

    try:
        from ll97_retrofit.services.cache import get_redis
        r = await get_redis()
        if r:
            await r.ping()
            status["redis"] = "connected"
        else:
            status["redis"] = "not configured"
    except Exception as e:
        status["redis"] = f"error: {e}"

    return status
