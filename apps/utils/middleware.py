import logging
import time
from django.utils.deprecation import MiddlewareMixin
from django.http import JsonResponse

logger = logging.getLogger("django")
request_logger = logging.getLogger("apps.requests")


class GlobalExceptionMiddleware(MiddlewareMixin):
    """
    Last line of defense for non-DRF views.
    """
    def process_exception(self, request, exception):
        logger.exception(f"Unhandled Middleware Exception: {str(exception)}")
        if request.path.startswith('/api/'):
            return JsonResponse(
                {"error": "Internal System Error", "code": "server_error"},
                status=500
            )
        return None  # Let Django's default 500 handler work for HTML


class RequestLogMiddleware:
    """
    One log line per API request: method, path, status, duration.
    """
    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        if not request.path.startswith('/api/'):
            return self.get_response(request)

        started = time.monotonic()
        response = self.get_response(request)
        elapsed_ms = (time.monotonic() - started) * 1000

        level = logging.WARNING if response.status_code >= 400 else logging.INFO
        request_logger.log(
            level,
            "%s %s -> %s (%.1fms)",
            request.method,
            request.path,
            response.status_code,
            elapsed_ms,
        )
        return response
