import asyncio
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from api.middleware.auth import require_access_token
from core.config import EXPERIENCE_LEVELS, LANGUAGES, VOICES, InterviewConfig

router = APIRouter()


class StartRequest(BaseModel):
    target_role: str = ""
    experience_level: Optional[str] = None
    question_count: Optional[int] = Field(default=None, ge=1, le=20)
    candidate_name: Optional[str] = None
    language: Optional[str] = None
    voice_id: Optional[str] = None


class AnswerRequest(BaseModel):
    text: str


@router.get("")
async def get_interview(request: Request, _=Depends(require_access_token)):
    """Current phase, floor, transcript, results and notices."""
    return request.app.state.session.snapshot()


@router.post("/start", status_code=status.HTTP_202_ACCEPTED)
async def start_interview(
    body: StartRequest, request: Request, _=Depends(require_access_token)
):
    """Start a new interview. Questions and the greeting are prepared in the background."""
    if body.language is not None and body.language not in LANGUAGES:
        raise HTTPException(status_code=422, detail=f"language must be one of {LANGUAGES}")
    if body.experience_level is not None and body.experience_level not in EXPERIENCE_LEVELS:
        raise HTTPException(status_code=422, detail=f"experience_level must be one of {EXPERIENCE_LEVELS}")
    if body.voice_id is not None and body.voice_id not in VOICES:
        raise HTTPException(status_code=422, detail=f"voice_id must be one of {VOICES}")

    defaults: InterviewConfig = request.app.state.config_manager.config.interview
    settings = defaults.model_copy(update={
        key: value
        for key, value in body.model_dump().items()
        if value is not None and key != "voice_id"
    })

    session = request.app.state.session
    task = asyncio.get_running_loop().create_task(session.start(settings, voice_id=body.voice_id))
    request.app.state.background_tasks.add(task)
    task.add_done_callback(request.app.state.background_tasks.discard)
    return {"status": "starting", "target_role": settings.target_role, "language": settings.language}


@router.post("/answer")
async def submit_answer(
    body: AnswerRequest, request: Request, _=Depends(require_access_token)
):
    """Typed answer, handled exactly like a spoken one."""
    session = request.app.state.session
    accepted = session.submit_text(body.text)
    return {"accepted": accepted, "phase": session.phase.value}


@router.post("/end")
async def end_interview(request: Request, _=Depends(require_access_token)):
    """Hang up: stop all audio and finish the interview."""
    session = request.app.state.session
    await session.end()
    return {"phase": session.phase.value}


@router.post("/reset")
async def reset_interview(request: Request, _=Depends(require_access_token)):
    """Clear everything and go back to setup."""
    session = request.app.state.session
    await session.reset()
    return {"phase": session.phase.value}
