"""
RELAY Health Check Endpoints

1. /health/ - Liveness check
2. /health/ready/ - Readiness check (database and cache)
"""

import time
import logging
from django.http import JsonResponse
from django.db import connection
from django.core.cache import cache
from django.views.decorators.http import require_GET
from django.views.decorators.csrf import csrf_exempt
from django.utils import timezone

logger = logging.getLogger(__name__)


@csrf_exempt
@require_GET
def health_check(request):
    """Liveness check for Docker HEALTHCHECK and load balancers."""
    return JsonResponse({
        'status': 'ok',
        'service': 'relay',
        'timestamp': timezone.now().isoformat(),
    })


@csrf_exempt
@require_GET
def readiness_check(request):
    """
    Readiness check. Returns 503 if the order store or the cache is down,
    since dispatch cannot run without either.
    """
    checks = {}
    all_healthy = True

    try:
        start = time.time()
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        checks['database'] = {
            'status': 'healthy',
            'response_time_ms': round((time.time() - start) * 1000, 2),
        }
    except Exception as e:
        checks['database'] = {'status': 'unhealthy', 'error': str(e)}
        all_healthy = False
        logger.error(f"[HEALTH] Database unhealthy: {e}")

    try:
        start = time.time()
        cache.set('_healthcheck_ping', 'pong', 10)
        healthy = cache.get('_healthcheck_ping') == 'pong'
        checks['cache'] = {
            'status': 'healthy' if healthy else 'unhealthy',
            'response_time_ms': round((time.time() - start) * 1000, 2),
        }
        all_healthy = all_healthy and healthy
    except Exception as e:
        checks['cache'] = {'status': 'unhealthy', 'error': str(e)}
        all_healthy = False
        logger.error(f"[HEALTH] Cache unhealthy: {e}")

    return JsonResponse(
        {
            'status': 'ready' if all_healthy else 'degraded',
            'checks': checks,
            'timestamp': timezone.now().isoformat(),
        },
        status=200 if all_healthy else 503,
    )
