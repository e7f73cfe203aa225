"""
Middleware package for the education advisor backend.

Request id tagging and PII-safe request logging.
"""

from .pii_middleware import PIIRedactionMiddleware, create_pii_middleware_config

__all__ = [
    'PIIRedactionMiddleware',
    'create_pii_middleware_config'
]
