"""
PII Redaction Middleware for FastAPI

Assigns a request id to every request and logs request bodies only after
redacting profile identity fields and free-text PII.
"""

import logging
import json
import time
from typing import Dict, Any, Optional
from uuid import uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from core.logging_config import set_request_id
from services.pii_redaction import PIIRedactor

logger = logging.getLogger("api")

REQUEST_ID_HEADER = "X-Request-ID"


class PIIRedactionMiddleware(BaseHTTPMiddleware):
    """Middleware that tags requests with an id and logs them with PII redacted."""

    def __init__(self, app, config: Optional[Dict[str, Any]] = None):
        super().__init__(app)
        self.pii_redactor = PIIRedactor()
        self.config = config or {}
        self.exclude_paths = self.config.get('exclude_paths', [])
        self.redact_requests = self.config.get('redact_requests', True)

    async def dispatch(self, request: Request, call_next):
        req_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid4())
        set_request_id(req_id)

        if any(request.url.path.startswith(path) for path in self.exclude_paths):
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = req_id
            return response

        if self.redact_requests:
            await self._log_request_safely(request)

        start = time.perf_counter()
        response = await call_next(request)
        logger.info(
            f"Response: {request.method} {request.url.path} {response.status_code}",
            extra={"duration_ms": round((time.perf_counter() - start) * 1000)},
        )
        response.headers[REQUEST_ID_HEADER] = req_id
        return response

    async def _log_request_safely(self, request: Request):
        """Log request data with PII redaction."""
        logger.info(f"Request: {request.method} {request.url.path}")
        if request.method not in ("POST", "PUT", "PATCH") or not logger.isEnabledFor(logging.DEBUG):
            return

        body = await request.body()
        if not body:
            return
        text = body.decode('utf-8', errors='replace')
        try:
            redacted = json.dumps(self.pii_redactor.redact_dict(json.loads(text)))
        except (json.JSONDecodeError, AttributeError):
            redacted = self.pii_redactor.redact_text(text)
        logger.debug(f"Request body for {request.url.path}: {redacted}")


def create_pii_middleware_config() -> Dict[str, Any]:
    """Create default configuration for PII redaction middleware."""
    return {
        'exclude_paths': [
            '/docs',
            '/openapi.json',
            '/performance',
        ],
        'redact_requests': True,
    }
