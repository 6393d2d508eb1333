# commons/context.py
"""
Contexto explícito de chamada (trace id + modo diagnóstico).

Views montam o contexto a partir do request e o repassam para as services;
tasks Celery o remontam a partir dos argumentos. Nenhuma service lê o
trace id de estado global.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from django.conf import settings


TRACE_HEADER = "X-Trace-Id"


def new_trace_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class CallContext:
    trace_id: str
    debug: bool = False

    @classmethod
    def from_request(cls, request) -> "CallContext":
        trace_id = getattr(request, "trace_id", None) or request.headers.get(TRACE_HEADER)
        return cls(
            trace_id=trace_id or new_trace_id(),
            debug=bool(settings.KRA_EXPOSE_RAW_RESPONSES),
        )

    @classmethod
    def background(cls, trace_id: str | None = None) -> "CallContext":
        return cls(trace_id=trace_id or new_trace_id(), debug=False)
