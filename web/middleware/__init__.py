"""HTTP middleware local to the web layer."""

from web.middleware.security_headers import SecurityHeadersMiddleware

__all__ = ["SecurityHeadersMiddleware"]
