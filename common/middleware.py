import json
import logging
import time
import traceback

from django.utils.deprecation import MiddlewareMixin

logger = logging.getLogger("common")

# never echo these back into the request log
SENSITIVE_KEYS = {"password", "token", "access", "refresh", "review_token"}


class GlobalRequestLoggingMiddleware(MiddlewareMixin):
    """
    One JSON line per request start/end, plus one per unhandled exception.
    """

    def process_request(self, request):
        request._started_at = time.monotonic()
        try:
            logger.info(json.dumps({
                "type": "request_start",
                "user": self._get_user_id(request),
                "method": request.method,
                "path": request.path,
                "query_params": self._scrub(request.GET.dict()),
            }))
        except Exception as e:
            logger.error(f"Error logging request start: {e}")

    def process_response(self, request, response):
        try:
            started = getattr(request, "_started_at", None)
            elapsed_ms = round((time.monotonic() - started) * 1000, 1) if started else None
            logger.info(json.dumps({
                "type": "request_end",
                "user": self._get_user_id(request),
                "method": request.method,
                "path": request.path,
                "status_code": response.status_code,
                "elapsed_ms": elapsed_ms,
            }))
        except Exception as e:
            logger.error(f"Error logging request end: {e}")
        return response

    def process_exception(self, request, exception):
        try:
            logger.error(json.dumps({
                "type": "exception",
                "user": self._get_user_id(request),
                "method": request.method,
                "path": request.path,
                "body": self._get_body(request),
                "exception": str(exception),
                "traceback": traceback.format_exc(),
            }))
        except Exception as e:
            logger.error(f"Error logging exception: {e}")
        return None

    def _get_user_id(self, request):
        user = getattr(request, "user", None)
        if user is None or not user.is_authenticated:
            return "anonymous"
        return user.pk

    def _scrub(self, data):
        if not isinstance(data, dict):
            return data
        return {key: ("***" if key in SENSITIVE_KEYS else value) for key, value in data.items()}

    def _get_body(self, request):
        try:
            if request.body:
                return self._scrub(json.loads(request.body.decode("utf-8")))
        except Exception:
            return "<unreadable body>"
        return {}
