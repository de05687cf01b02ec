from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from certexam.core.cache import check_rate_limit

class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per client IP request budget over a fixed window, counted in redis."""

    def __init__(self, app, client, limit: int, window: int, exempt=("/health",)):
        super().__init__(app)
        self.client = client
        self.limit = limit
        self.window = window
        self.exempt = set(exempt)

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.exempt:
            return await call_next(request)
        ip = request.client.host if request.client else "unknown"
        allowed, current = check_rate_limit(self.client, ip, self.limit, self.window)
        if not allowed:
            return JSONResponse(
                status_code=429,
                content={"success": False, "message": "Too many requests from this IP, please try again later"},
                headers={"Retry-After": str(self.window)},
            )
        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.limit)
        response.headers["X-RateLimit-Remaining"] = str(max(self.limit - current, 0))
        return response
