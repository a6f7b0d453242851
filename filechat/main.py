# filechat/main.py
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from sqlalchemy.orm import sessionmaker

from filechat.core import config
from filechat.core.database import SessionLocal, init_db
from filechat.core.logbuffer import LogBuffer, attach_log_buffer
from filechat.core.storage import LocalBucket
from filechat.core.webhook import WebhookClient
from filechat.routers import auth, chat, debug, file, ws_router

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Initialize the database (create tables if needed)
    init_db(app.state.session_factory.kw.get("bind"))
    handler = None
    if app.state.log_buffer.enabled:
        handler = attach_log_buffer(app.state.log_buffer)
    yield
    if handler is not None:
        logging.getLogger("filechat").removeHandler(handler)


def create_app(
    session_factory: Optional[sessionmaker] = None,
    bucket: Optional[LocalBucket] = None,
    webhook: Optional[WebhookClient] = None,
    log_buffer: Optional[LogBuffer] = None,
    poll_settings: Optional[dict] = None,
) -> FastAPI:
    app = FastAPI(title="FileChat", lifespan=lifespan)

    # Add CORS middleware (adjust allow_origins as needed for production)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.session_factory = session_factory or SessionLocal
    app.state.bucket = bucket or LocalBucket(
        config.STORAGE_DIRECTORY, config.STORAGE_BUCKET, config.PUBLIC_BASE_URL
    )
    app.state.webhook = webhook or WebhookClient()
    app.state.log_buffer = log_buffer or LogBuffer(config.LOG_BUFFER_CAPACITY, enabled=config.ENABLE_LOGS)
    app.state.poll_settings = poll_settings or {
        "max_attempts": config.POLL_MAX_ATTEMPTS,
        "initial_delay": config.POLL_INITIAL_DELAY,
        "interval": config.POLL_INTERVAL,
    }

    # Include routers
    app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
    app.include_router(file.router, prefix="/files", tags=["File"])
    app.include_router(chat.router, prefix="/chat", tags=["Chat"])
    app.include_router(ws_router.router, prefix="/chat", tags=["Chat"])
    app.include_router(debug.router, prefix="/debug", tags=["Debug"])

    # Public object URLs resolve here
    app.mount(
        f"/storage/v1/object/public/{app.state.bucket.name}",
        StaticFiles(directory=str(app.state.bucket.directory), check_dir=False),
        name="storage",
    )

    @app.get("/")
    def read_root():
        return {"message": "Welcome to the FileChat backend!"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("filechat.main:app", host="0.0.0.0", port=8000, reload=True)
