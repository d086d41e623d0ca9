import asyncio
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from alqemist.config import get_settings
from alqemist.core.redis import close_redis, get_redis_client
from alqemist.dependencies import get_provider_registry, get_task_scheduler
from alqemist.routers import auth, chat, personas, suggestions, tasks, threads, usage, webhook
from alqemist.services.task_sweeper import due_task_sweeper

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    get_provider_registry()
    task = None
    if settings.task_sweep_interval_seconds > 0:
        task = asyncio.create_task(due_task_sweeper(get_task_scheduler(), settings.task_sweep_interval_seconds))
    try:
        yield
    finally:
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await close_redis()


app = FastAPI(title="Alqemist API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(chat.router)
app.include_router(tasks.router)
app.include_router(personas.router)
app.include_router(suggestions.router)
app.include_router(usage.router)
app.include_router(threads.router)
app.include_router(webhook.router)


@app.get("/api/health")
async def health():
    """Liveness plus optional Redis status. DB not checked here."""
    client = await get_redis_client()
    return {
        "status": "ok",
        "providers": get_provider_registry().configured_names(),
        "redis": "ok" if client is not None else "unavailable",
    }


@app.get("/")
def root():
    return {"message": "Alqemist API", "docs": "/docs"}
