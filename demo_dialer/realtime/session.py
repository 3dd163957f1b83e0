"""Builders for the outbound realtime events the bridge sends.

Audio is G.711 u-law both ways so Twilio frames pass through untouched.
Server VAD detects end of turn, but ``create_response`` is off: the bridge
decides when a response is requested, after committing pending audio.
"""

from __future__ import annotations

from typing import Any, Optional

from demo_dialer.config import Settings
from demo_dialer.models.lead import CallSession
from demo_dialer.realtime.prompts import build_greeting, build_instructions

AUDIO_FORMAT = "g711_ulaw"


def build_session_update(
    settings: Settings,
    session: Optional[CallSession],
    tools: list[dict[str, Any]],
) -> dict[str, Any]:
    """``session.update`` carrying voice, audio format, VAD, persona and tools."""
    return {
        "type": "session.update",
        "session": {
            "modalities": ["audio", "text"],
            "voice": settings.openai_voice,
            "input_audio_format": AUDIO_FORMAT,
            "output_audio_format": AUDIO_FORMAT,
            "temperature": settings.openai_temperature,
            "turn_detection": {
                "type": "server_vad",
                "threshold": settings.vad_threshold,
                "prefix_padding_ms": settings.vad_prefix_padding_ms,
                "silence_duration_ms": settings.vad_silence_duration_ms,
                "create_response": False,
            },
            "instructions": build_instructions(
                session,
                agent_name=settings.agent_name,
                company_name=settings.company_name,
                rep_name=settings.rep_name,
            ),
            "tools": tools,
            "tool_choice": "auto",
        },
    }


def build_greeting_item(settings: Settings, session: Optional[CallSession]) -> dict[str, Any]:
    """Scripted opening, injected as a user-side instruction to say it verbatim."""
    line = build_greeting(session, settings.agent_name, settings.company_name)
    return {
        "type": "conversation.item.create",
        "item": {
            "type": "message",
            "role": "user",
            "content": [
                {
                    "type": "input_text",
                    "text": f'The call just connected. Open with exactly: "{line}"',
                }
            ],
        },
    }


def build_function_output(call_id: str, output: str) -> dict[str, Any]:
    return {
        "type": "conversation.item.create",
        "item": {
            "type": "function_call_output",
            "call_id": call_id,
            "output": output,
        },
    }


def input_audio_append(payload: str) -> dict[str, Any]:
    return {"type": "input_audio_buffer.append", "audio": payload}


def input_audio_commit() -> dict[str, Any]:
    return {"type": "input_audio_buffer.commit"}


def response_create() -> dict[str, Any]:
    return {"type": "response.create", "response": {"modalities": ["audio", "text"]}}
