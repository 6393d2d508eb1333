# commons/errors.py

from django.utils import timezone
from rest_framework.response import Response

from commons.context import CallContext


def error_body(error: Exception, context: CallContext) -> dict:
    """
    Corpo JSON padrão de erro do gateway.

    raw_response só é preenchido em modo diagnóstico (context.debug).
    """
    details = {
        "kra_error_code": getattr(error, "error_code", None),
        "kra_http_status": getattr(error, "upstream_status", None),
    }
    details.update(getattr(error, "details", None) or {})
    errors = getattr(error, "errors", None)
    if errors:
        details["errors"] = errors
    if context.debug:
        details["raw_response"] = getattr(error, "raw_response", None)

    return {
        "code": getattr(error, "code", "ICORE_INTERNAL_ERROR"),
        "message": getattr(error, "message", str(error)),
        "category": getattr(error, "category", "unknown"),
        "status": getattr(error, "http_status", 500),
        "details": details,
        "trace_id": context.trace_id,
        "timestamp": timezone.now().isoformat(),
    }


def error_response(error: Exception, context: CallContext) -> Response:
    body = error_body(error, context)
    return Response(body, status=body["status"], headers={"X-Trace-Id": context.trace_id})
