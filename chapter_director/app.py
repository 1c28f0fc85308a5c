"""FastAPI surface for the chapter director.

    GET  /api/health          liveness + configured default mode
    POST /api/chapter-events  {player_state, trigger_reason?, mode?} → event

Remote failures map to 502 with the failure reason, like any gateway.
Run with:  uvicorn --factory chapter_director.app:create_app
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, FastAPI, HTTPException, Request
from pydantic import BaseModel

from chapter_director.config import DirectorConfig
from chapter_director.errors import ConfigurationError, RemoteDispatchError
from chapter_director.factory import create_service
from chapter_director.models import DispatchRequest, NarrativeEventResponse, PlayerNarrativeSnapshot
from chapter_director.service import DispatchMode, DispatchService

logger = logging.getLogger(__name__)

router = APIRouter()


class ChapterEventBody(BaseModel):
    player_state: PlayerNarrativeSnapshot
    trigger_reason: str | None = None
    mode: DispatchMode | None = None


@router.get("/health")
async def health(request: Request):
    """Health check."""
    return {"status": "ok", "mode": request.app.state.default_mode}


@router.post("/chapter-events", response_model=NarrativeEventResponse)
async def chapter_event(body: ChapterEventBody, request: Request):
    """Dispatch one narrative event in the requested (or default) mode."""
    service: DispatchService = request.app.state.service
    mode = body.mode or request.app.state.default_mode
    dispatch = DispatchRequest(player_state=body.player_state, trigger_reason=body.trigger_reason)
    try:
        return await service.generate_chapter_event(dispatch, mode)
    except RemoteDispatchError as e:
        raise HTTPException(502, {"reason": e.reason, "message": str(e)})
    except ConfigurationError as e:
        raise HTTPException(503, str(e))


def create_app(
    service: DispatchService | None = None,
    default_mode: DispatchMode | None = None,
) -> FastAPI:
    if service is None:
        config = DirectorConfig.from_environment()
        service = create_service(config)
        default_mode = default_mode or config.mode
        logger.info("chapter director starting in %s mode", config.mode)

    app = FastAPI(title="Chapter Director")
    app.state.service = service
    app.state.default_mode = default_mode or "sandbox"
    app.include_router(router, prefix="/api")
    return app
