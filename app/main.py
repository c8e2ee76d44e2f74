# app/main.py
from fastapi import FastAPI

from app.api.routes import attendance, health, internal
from app.core.config import get_settings
from app.core.logging import configure_logging
from app.db.session import init_db_for_startup


def create_app() -> FastAPI:
    """
    Application factory for the Raid Attendance service.
    """
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Backend service that ingests Warcraft Logs reports and attendance,\n"
            "merges same-day raids, and serves per-character attendance statistics\n"
            "and the raid-by-character attendance matrix."
        ),
        version="0.1.0",
    )

    # Routers
    app.include_router(health.router)
    app.include_router(attendance.router)
    app.include_router(internal.router)

    @app.on_event("startup")
    async def on_startup() -> None:  # pragma: no cover
        await init_db_for_startup()

    return app


app = create_app()
