"""FastAPI server: relay routes plus the studio API."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from drawsync import __version__, config
from drawsync.api.relay_routes import router as relay_router
from drawsync.api.studio import router as studio_router

# Configure logging on import — before anything else logs
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)-5s [%(name)s] %(message)s",
    datefmt="%H:%M:%S",
)

logger = logging.getLogger(__name__)

app = FastAPI(title="drawsync", description="Diagram/JSON sync studio", version=__version__)

# Relay routes answer their own preflights with a fixed header set, so they
# sit on the outer app, outside the CORS middleware.
app.include_router(relay_router)


@app.get("/health")
def health():
    return {"status": "ok"}


studio_app = FastAPI(title="drawsync studio", version=__version__)
studio_app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)
studio_app.include_router(studio_router)

# Must be mounted after all outer routes; it matches every remaining path
app.mount("/", studio_app)


def main() -> None:
    import uvicorn

    logger.info("Starting drawsync on %s:%d", config.HOST, config.PORT)
    uvicorn.run(app, host=config.HOST, port=config.PORT, log_level=config.LOG_LEVEL.lower())


if __name__ == "__main__":
    main()
