from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from chore_anchors.config import Settings, settings as default_settings
from chore_anchors.logging_config import get_logger, setup_logging
from chore_anchors.routers import anchors
from chore_anchors.services.file_store import AnchorFileStore

logger = get_logger(__name__)


def create_app(config: Optional[Settings] = None) -> FastAPI:
    config = config or default_settings

    app = FastAPI(
        title="Anchor Sync API",
        version="1.0.0",
        description="Bulk read and replace of chore anchors for the mobile client"
    )
    app.state.settings = config
    app.state.file_store = AnchorFileStore(config.data_file)

    # CORS middleware for React Native
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info("%s %s", request.method, request.url.path)
        return await call_next(request)

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        # same {"error": ...} body as the anchor routes
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail},
                            headers=getattr(exc, "headers", None))

    app.include_router(anchors.router)

    @app.get("/health")
    async def health_check():
        return {"status": "ok"}

    return app


app = create_app()


def serve(config: Optional[Settings] = None) -> None:
    """Run the sync server with uvicorn."""
    import uvicorn

    config = config or default_settings
    setup_logging(config)
    logger.info("Anchor backend running at http://%s:%d", config.host, config.port)
    uvicorn.run(create_app(config), host=config.host, port=config.port)


if __name__ == "__main__":
    serve()
