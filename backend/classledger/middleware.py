import logging
import time
import uuid
from typing import Callable

from django.conf import settings
from django.http import HttpRequest, HttpResponse

logger = logging.getLogger('classledger.requests')

REQUEST_ID_HEADER = 'X-Request-ID'


class RequestTimingMiddleware:
    """Tag every request with an id and log the ones that run long.

    An incoming ``X-Request-ID`` is reused so a caller can correlate its own
    retries (409 responses are retryable) with the server log.
    """

    def __init__(self, get_response: Callable[[HttpRequest], HttpResponse]):
        self.get_response = get_response

    def __call__(self, request: HttpRequest):
        incoming = (request.headers.get(REQUEST_ID_HEADER) or '').strip()
        request.request_id = incoming[:64] or uuid.uuid4().hex

        started = time.perf_counter()
        response = self.get_response(request)
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        response[REQUEST_ID_HEADER] = request.request_id

        threshold_ms = int(getattr(settings, 'SLOW_REQUEST_LOG_MS', 1200))
        if getattr(settings, 'SLOW_REQUEST_LOG_ENABLED', True) and elapsed_ms >= threshold_ms:
            user = getattr(request, 'user', None)
            actor = user.email if user is not None and user.is_authenticated else 'anonymous'
            logger.warning(
                'slow request id=%s %s %s status=%s duration_ms=%.2f actor=%s',
                request.request_id, request.method, request.path,
                response.status_code, elapsed_ms, actor,
            )
        return response
