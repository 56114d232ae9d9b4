import logging
from fastapi import FastAPI
from app.api.routers import router, get_controller
from app.core.config import settings
from app.core.logging import configure_logging

log = logging.getLogger(__name__)


def create_app() -> FastAPI:
    configure_logging(settings.log_level)

    app = FastAPI(title="Plate Scanner Service", version="1.0.0")
    app.include_router(router)

    @app.on_event("shutdown")
    def release_camera():
        if get_controller.cache_info().currsize:
            get_controller().stop_camera()
            log.info("Camera released on shutdown")

    return app


app = create_app()
