import logging
from functools import lru_cache
from typing import Any, Protocol

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from . import models  # noqa: F401
from .config import get_settings
from .db import Base, engine
from .migrations import run_migrations
from .telegram_bot import build_bot

logger = logging.getLogger(__name__)

settings = get_settings()

app = FastAPI(title="Pocket Accountant", version="1.0.0")


class UpdateProcessor(Protocol):
    async def handle_update(self, payload: dict[str, Any]) -> None: ...


@lru_cache
def _bot() -> UpdateProcessor:
    return build_bot(settings)


def get_update_processor() -> UpdateProcessor:
    """Shared bot instance; tests override this dependency."""
    return _bot()


@app.on_event("startup")
def on_startup() -> None:
    """Ensure database tables exist and are up to date."""
    Base.metadata.create_all(bind=engine)
    run_migrations(engine)


@app.post(settings.webhook_path)
async def telegram_webhook(
    request: Request, processor: UpdateProcessor = Depends(get_update_processor)
) -> Any:
    try:
        payload = await request.json()
        await processor.handle_update(payload)
    except Exception:  # noqa: BLE001
        logger.exception("Failed to process webhook update")
        return JSONResponse(status_code=500, content={"error": "Internal server error"})
    return {"ok": True}


@app.api_route(
    settings.webhook_path,
    methods=["GET", "HEAD", "PUT", "PATCH", "DELETE", "OPTIONS"],
    include_in_schema=False,
)
def webhook_method_not_allowed() -> JSONResponse:
    return JSONResponse(status_code=405, content={"error": "Method not allowed"}, headers={"Allow": "POST"})


@app.get("/")
def health_check() -> dict[str, str]:
    return {"status": "ok"}
