# commons/views/commons_views.py

from django.conf import settings
from django.db import DatabaseError, connection
from django.http import JsonResponse
from django.utils import timezone


def liveness(request):
    return JsonResponse({"ok": True})


def readiness(request):
    """
    Pronto para receber tráfego quando o banco responde.
    Informa também o ambiente KRA configurado (sandbox/production).
    """
    try:
        with connection.cursor() as cur:
            cur.execute("SELECT 1")
            cur.fetchone()
    except DatabaseError as e:
        return JsonResponse({"ok": False, "error": str(e)}, status=503)

    return JsonResponse({"ok": True, "kra_environment": settings.KRA_ENVIRONMENT})


def time_now(request):
    # horário local do gateway, o mesmo usado nos campos Date/Time dos comandos
    now = timezone.localtime()
    return JsonResponse({"now": now.isoformat(), "timezone": settings.TIME_ZONE})
