"""Gateway middleware: request correlation and API body size limit.

``RequestIdMiddleware`` gives every request an id, taken from the incoming
``X-Request-ID`` header or generated as a UUID4. The id is stored on the
request, published through ``REQUEST_ID_CTX`` so log filters and the
storage adapters can read it, and echoed on the response.

``ApiSizeLimitMiddleware`` refuses ``/api/`` requests whose declared body
exceeds ``API_MAX_BYTES``. Product images and customer documents travel
as base64 inside JSON, so the default is a few megabytes.
"""

import contextvars
import os
import uuid

from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")
MAX_API_BYTES = int(os.getenv("API_MAX_BYTES", str(8 * 1024 * 1024)))


class RequestIdMiddleware(MiddlewareMixin):
    HEADER = "HTTP_X_REQUEST_ID"
    RESPONSE_HEADER = "X-Request-ID"

    def process_request(self, request):
        rid = request.META.get(self.HEADER) or str(uuid.uuid4())
        request.request_id = rid
        request._request_id_token = REQUEST_ID_CTX.set(rid)

    def process_response(self, request, response):
        """Echo the request id and restore the previous ContextVar value."""
        rid = getattr(request, "request_id", None) or REQUEST_ID_CTX.get()
        response[self.RESPONSE_HEADER] = rid
        token = getattr(request, "_request_id_token", None)
        if token is not None:
            REQUEST_ID_CTX.reset(token)
            request._request_id_token = None
        return response


class ApiSizeLimitMiddleware(MiddlewareMixin):
    def process_request(self, request):
        if not request.path.startswith("/api/"):
            return None
        clen = request.META.get("CONTENT_LENGTH")
        if clen and clen.isdigit() and int(clen) > MAX_API_BYTES:
            return JsonResponse(
                {"error": f"Request body exceeds {MAX_API_BYTES} bytes", "kind": "VALIDATION"},
                status=413,
            )
        return None
