import uuid, time, logging
from django.utils.deprecation import MiddlewareMixin

from commons.context import TRACE_HEADER

logger = logging.getLogger("icore.request")


class TraceIdMiddleware(MiddlewareMixin):
    """
    Lê (ou gera) o X-Trace-Id, devolve o mesmo header na resposta e registra
    uma linha de acesso por request.
    """

    def process_request(self, request):
        request.trace_id = request.headers.get(TRACE_HEADER) or uuid.uuid4().hex
        request._start_time = time.time()

    def process_response(self, request, response):
        trace_id = getattr(request, "trace_id", None)
        if trace_id:
            response[TRACE_HEADER] = trace_id

        latency = int((time.time() - getattr(request, "_start_time", time.time())) * 1000)
        logger.info(
            "http_request",
            extra={
                "trace_id": trace_id or "-",
                "path": request.path,
                "method": request.method,
                "status": response.status_code,
                "latency_ms": latency,
            },
        )
        return response
