import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .backend import BackendClient
from .core.config import Settings, get_settings
from .core.database import init_db, make_engine
from .routers import auth, directory, rooms, websockets

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, backend: Optional[BackendClient] = None) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level)

    if backend is None:
        backend = BackendClient(make_engine(settings.database_url))

    app = FastAPI(title="Room Chat")
    app.state.backend = backend

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth.router)
    app.include_router(directory.router)
    app.include_router(rooms.router)
    app.include_router(websockets.router)

    @app.on_event("startup")
    async def startup_event():
        try:
            init_db(backend.engine)
            logger.info("Tables created successfully.")
        except Exception:
            logger.exception("Error creating tables")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)
