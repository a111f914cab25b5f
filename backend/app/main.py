import logging
from datetime import timedelta

from fastapi import FastAPI

from app.api import health
from app.core.config import settings
from app.core.init_db import init_db
from app.core.scheduler import MaterializationScheduler
from app.db.mongodb import close_mongo_connection, connect_to_mongo, get_database
from app.repositories.store import EntityStore

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.PROJECT_NAME,
    description="""
    Team calendar core: team-role authorization, task and membership lifecycles,
    and background materialization of recurring events.
    """,
    version="0.1.0",
)


@app.on_event("startup")
async def startup_event():
    await connect_to_mongo()
    database = await get_database()
    await init_db(database)

    app.state.store = EntityStore(database)
    app.state.scheduler = None
    if settings.MATERIALIZER_ENABLED:
        scheduler = MaterializationScheduler(
            app.state.store,
            skew=timedelta(seconds=settings.MATERIALIZATION_SKEW_SECONDS),
        )
        await scheduler.start(
            timedelta(seconds=settings.MATERIALIZER_INTERVAL_SECONDS),
            window=timedelta(days=settings.MATERIALIZATION_WINDOW_DAYS),
        )
        app.state.scheduler = scheduler
    else:
        logger.info("Recurrence materializer disabled")


@app.on_event("shutdown")
async def shutdown_event():
    scheduler = getattr(app.state, "scheduler", None)
    if scheduler is not None:
        await scheduler.stop()
    await close_mongo_connection()


app.include_router(health.router, prefix="/health", tags=["health"])


@app.get("/")
async def root():
    return {"message": f"Welcome to {settings.PROJECT_NAME}"}
