"""
Mode Policy
===========
Pure selection rules deciding which backend serves a request. Evaluated at
request time from a :class:`RequestContext`; nothing is cached.

* Identification: online → cloud; offline → classify-then-local-generate.
* Chat: "fast local first" → local whenever it is ready (regardless of
  connectivity), otherwise cloud when online, otherwise a static message.
"""

from __future__ import annotations

from floralens.domain.session import ChatMode, IdentificationMode, RequestContext


def select_identification_mode(context: RequestContext) -> IdentificationMode:
    if context.is_online:
        return IdentificationMode.CLOUD
    return IdentificationMode.LOCAL


def select_chat_mode(context: RequestContext, local_session_available: bool = True) -> ChatMode:
    if context.is_local_model_ready and local_session_available:
        return ChatMode.LOCAL
    if context.is_online:
        return ChatMode.CLOUD
    return ChatMode.UNAVAILABLE
