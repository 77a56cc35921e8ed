"""Shared FastAPI dependencies.

Separated to avoid circular imports between route modules and ``main``.
"""

from __future__ import annotations

from functools import lru_cache

from coach.router import CallRouter, CoachScript
from coach.sessions import SessionStore
from config.settings import get_settings
from integrations.telnyx_client import TelnyxCallControl, build_call_control
from telephony.numbers import parse_allow_list
from telephony.signature import SignatureVerifier


@lru_cache(maxsize=1)
def _call_control_factory() -> TelnyxCallControl:
    return build_call_control(get_settings())


@lru_cache(maxsize=1)
def _router_factory() -> CallRouter:
    settings = get_settings()
    script = CoachScript(
        collect_prompt=settings.collect_prompt,
        rejection_message=settings.rejection_message,
        invalid_number_message=settings.invalid_number_message,
        whisper_trigger=settings.whisper_trigger_digits,
        whisper_text=settings.whisper_script,
    )
    return CallRouter(
        _call_control_factory(),
        SessionStore(),
        script,
        allow_list=parse_allow_list(settings.allow_list, settings.country_code),
        country_code=settings.country_code,
        assistant_id=settings.ai_assistant_id,
    )


@lru_cache(maxsize=1)
def _verifier_factory() -> SignatureVerifier:
    return SignatureVerifier(get_settings().telnyx_public_key)


def get_call_router() -> CallRouter:
    return _router_factory()


def get_signature_verifier() -> SignatureVerifier:
    return _verifier_factory()


async def close_call_control() -> None:
    if _call_control_factory.cache_info().currsize:
        await _call_control_factory().aclose()
        _call_control_factory.cache_clear()
        _router_factory.cache_clear()
