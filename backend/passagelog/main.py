from contextlib import asynccontextmanager

from fastapi import FastAPI

from passagelog.core.config import settings
from passagelog.core.logging_setup import configure_logging
from passagelog.core.observability import setup_observability
from passagelog.core.runtime import build_runtime
from passagelog.routes.auth import router as auth_router
from passagelog.routes.passages import router as passages_router
from passagelog.routes.positions import router as positions_router

configure_logging(settings.LOG_LEVEL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    runtime = build_runtime(settings)
    app.state.runtime = runtime
    try:
        yield
    finally:
        runtime.close()


app = FastAPI(title="Passage Log", lifespan=lifespan)
setup_observability(app, settings)

app.include_router(auth_router)
app.include_router(positions_router)
app.include_router(passages_router)


@app.get("/health")
def health():
    return {"status": "ok"}
