from fastapi import Request, FastAPI
from starlette.middleware.base import BaseHTTPMiddleware
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

# --- Rate Limiting ---
# Only the login route is decorated; everything else is unlimited
limiter = Limiter(key_func=get_remote_address)

def setup_rate_limiting(app: FastAPI):
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# --- Security Headers Middleware ---
# Every route answers JSON or plain text, so nothing may be framed or loaded
API_SECURITY_HEADERS = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
    "Referrer-Policy": "no-referrer",
}

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        for header, value in API_SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        return response

# --- Input Cleanup ---
def sanitize_input(text: str) -> str:
    """Trim surrounding whitespace from free text.

    Values are stored as sent otherwise; escaping belongs to whatever renders
    them as HTML.
    """
    if not isinstance(text, str):
        return text
    return text.strip()
