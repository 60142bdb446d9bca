from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from api.middleware.auth import require_access_token

router = APIRouter()


class MuteToggle(BaseModel):
    muted: bool


class MicToggle(BaseModel):
    enabled: bool


@router.post("/enable")
async def enable_audio(request: Request, _=Depends(require_access_token)):
    """Manual unlock after the output device blocked playback."""
    session = request.app.state.session
    enabled = await session.turns.enable_audio()
    return {"audio_enabled": enabled}


@router.put("/mute")
async def toggle_mute(
    body: MuteToggle, request: Request, _=Depends(require_access_token)
):
    """Mute or unmute the interviewer's voice."""
    request.app.state.session.set_muted(body.muted)

    cm = request.app.state.config_manager
    cm.update_nested("voice", muted=body.muted)

    return {"muted": body.muted}


@router.put("/mic")
async def toggle_mic(
    body: MicToggle, request: Request, _=Depends(require_access_token)
):
    """Enable or disable listening (off means typed answers only)."""
    request.app.state.session.set_mic_enabled(body.enabled)
    return {"mic_enabled": body.enabled}
