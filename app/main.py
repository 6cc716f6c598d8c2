import asyncio
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import CORS_ORIGINS, RABBITMQ_URL, RUN_WORKER
from app.database import engine, init_models
from app.exceptions import register_exception_handlers
from app.logger_config import logger
from app.routes import router
from app.workers import worker


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("App starting up...")
    await init_models()

    worker_task = None
    if RUN_WORKER and RABBITMQ_URL:
        worker_task = asyncio.create_task(worker())
    try:
        yield
    finally:
        logger.info("App shutting down...")
        try:
            if worker_task is not None:
                await _stop_worker(worker_task)
        finally:
            await engine.dispose()


async def _stop_worker(worker_task: asyncio.Task):
    worker_task.cancel()
    try:
        await worker_task
    except asyncio.CancelledError:
        pass
    except Exception:
        logger.exception("booking worker had stopped with an error")


app = FastAPI(title="Event Booking API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)
app.include_router(router)


@app.get("/health")
async def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app.main:app", host="0.0.0.0", port=int(os.getenv("PORT", 8000)))
