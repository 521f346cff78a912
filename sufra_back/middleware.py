import logging
from time import perf_counter
from django.db import connection, reset_queries
from django.conf import settings

logger = logging.getLogger(__name__)


class TimingMiddleware:
    """
    Middleware simple pour logguer le temps total et les requêtes SQL.
    Activé surtout en DEBUG.
    """
    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        if not settings.DEBUG or not request.path.startswith('/api/'):
            return self.get_response(request)

        reset_queries()
        t0 = perf_counter()
        response = self.get_response(request)
        total_ms = (perf_counter() - t0) * 1000
        num_queries = len(connection.queries)
        db_time_ms = sum(float(q.get('time', 0)) for q in connection.queries) * 1000
        logger.debug(
            "[TimingMiddleware] %s %s total_ms=%.1f db_queries=%d db_time_ms=%.1f",
            request.method, request.path, total_ms, num_queries, db_time_ms
        )
        # Exposer les timings au client (onglet 'Server-Timing' des DevTools)
        response.headers['Server-Timing'] = (
            f"app;dur={total_ms:.1f}, db;dur={db_time_ms:.1f}, "
            f"queries;desc=\"{num_queries} SQL\""
        )
        return response
