# main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from deadswitch import database
from deadswitch.config import get_settings
from deadswitch.crud import MessageStore
from deadswitch.exceptions import DeadSwitchError
from deadswitch.features.reminders import ReminderScheduler, recover
from deadswitch.routes import router
from deadswitch.services.message_service import MessageService
from deadswitch.services.notifier import build_notifier

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------
_settings = get_settings()
logging.basicConfig(
    level=logging.DEBUG if _settings.debug else _settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    handlers=[
        logging.StreamHandler(),
    ],
)
logging.getLogger("apscheduler").setLevel(logging.WARNING)
logger = logging.getLogger("main")


# ---------------------------------------------------------------------------
# App lifespan (startup/shutdown)
# ---------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown tasks."""
    settings = get_settings()

    logger.info("Startup: initializing database...")
    engine = database.make_engine(settings.database_url)
    try:
        await database.init_db_async(engine)
        logger.info("Connected to database: %s", database.get_database_dsn(engine))
    except Exception as e:
        logger.critical("Database initialization failed: %s", e)
        raise

    store = MessageStore(database.make_sessionmaker(engine))
    scheduler = ReminderScheduler(store, build_notifier(settings), settings)
    app.state.engine = engine
    app.state.scheduler = scheduler
    app.state.message_service = MessageService(store, scheduler)

    if settings.scheduler_enabled:
        logger.info("Startup: starting reminder scheduler...")
        scheduler.start()
        await recover(scheduler)
    else:
        logger.info("Reminder scheduler disabled (SCHEDULER_ENABLED is false)")

    yield

    if scheduler.running:
        logger.info("Shutdown: stopping reminder scheduler...")
        scheduler.shutdown()

    logger.info("Shutdown: closing database connection pool...")
    try:
        await database.shutdown_db_async(engine)
        logger.info("Cleanup complete.")
    except Exception as e:
        logger.error("Error during shutdown cleanup: %s", e)


# ---------------------------------------------------------------------------
# FastAPI Application
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Dead Switch",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DeadSwitchError)
async def deadswitch_error_handler(request: Request, exc: DeadSwitchError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


# ---------------------------------------------------------------------------
# Base Routes
# ---------------------------------------------------------------------------

@app.get("/", tags=["Health"])
async def root():
    """Basic health check to verify the service is running."""
    return {"status": "ok", "message": "Dead Switch is running."}


app.include_router(router)
