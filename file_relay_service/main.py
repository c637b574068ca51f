from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from contextlib import asynccontextmanager

from database import engine, AsyncSessionLocal
from models import Base
from routers import files as files_router
from errors import register_error_handlers
from logging_config import get_logger
from storage import client_store, create_http_client, build_blob_store
from sweeper import RetentionSweeper, create_scheduler
from config import settings

logger = get_logger(__name__)

async def create_db_and_tables():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created or already exist.")

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("File Relay Service starting up...")
    await create_db_and_tables()
    client_store["client"] = create_http_client(settings)
    logger.info(f"Blob storage: {settings.SUPABASE_URL} (bucket '{settings.STORAGE_BUCKET}')")

    scheduler = None
    if settings.SWEEP_ENABLED:
        sweeper = RetentionSweeper(
            AsyncSessionLocal,
            build_blob_store(client_store["client"], settings),
            settings.RETENTION_DAYS,
        )
        scheduler = create_scheduler(sweeper, settings)
        scheduler.start()
        logger.info(
            f"Retention sweep scheduled daily at {settings.SWEEP_HOUR:02d}:{settings.SWEEP_MINUTE:02d} "
            f"{settings.SWEEP_TIMEZONE}, retention {settings.RETENTION_DAYS} days"
        )
    yield
    logger.info("File Relay Service shutting down...")
    if scheduler is not None:
        scheduler.shutdown(wait=False)
    if "client" in client_store:
        await client_store["client"].aclose()
        client_store.pop("client", None)

app = FastAPI(
    title="File Relay Service",
    version="0.1.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)
register_error_handlers(app)

app.include_router(files_router.router)

@app.get("/ping")
async def ping():
    return {"ping": "pong! from file relay"}

if settings.STATIC_DIR.is_dir():
    app.mount("/", StaticFiles(directory=settings.STATIC_DIR, html=True), name="dashboard")

if __name__ == "__main__":
    import uvicorn
    logger.info(f"Starting file relay on {settings.RELAY_HOST}:{settings.PORT}")
    uvicorn.run("main:app", host=settings.RELAY_HOST, port=settings.PORT)
