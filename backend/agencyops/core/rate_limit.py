"""
Rate Limiting Middleware
Sliding-window limits for authentication and public document endpoints
"""
from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from collections import defaultdict
from datetime import timedelta
from typing import Dict, Tuple, Optional
import threading
import logging

from agencyops.core.security import get_client_info
from agencyops.core.utils import utcnow

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Thread-safe in-memory rate limiter using a sliding window.
    Counters live in process memory, so each worker limits independently.
    """

    def __init__(self):
        self._requests: Dict[str, list] = defaultdict(list)
        self._lock = threading.Lock()

        # Longest prefix wins
        self.limits = {
            '/api/v1/auth/login': (5, 60),
            '/api/v1/auth/signup': (3, 300),
            '/api/v1/auth/change-password': (3, 300),
            '/api/v1/public/invites': (10, 60),
            '/api/v1/public/proposals': (10, 60),
            '/api/v1/public/contracts': (10, 60),
            '/api/v1/public/quotations': (10, 60),
            '/api/v1/public/forms': (20, 60),
            '/api/v1/public/submissions': (30, 60),
            '/api/v1/public/questionnaires': (30, 60),
            'default': (100, 60),
        }

    def _limit_for(self, path: str) -> Tuple[int, int]:
        matches = [p for p in self.limits if p != 'default' and path.startswith(p)]
        if not matches:
            return self.limits['default']
        return self.limits[max(matches, key=len)]

    def _get_rate_limit_key(self, request: Request) -> str:
        """IP address, plus a token prefix when the caller is authenticated"""
        ip, _ = get_client_info(request)
        auth_header = request.headers.get("Authorization", "")
        user_id = "anonymous"
        if auth_header.startswith("Bearer ") and len(auth_header) > 15:
            user_id = auth_header[7:15]
        return f"{ip or 'unknown'}:{user_id}"

    def _cleanup_old_requests(self, key: str, window_seconds: int):
        cutoff = utcnow() - timedelta(seconds=window_seconds)
        self._requests[key] = [t for t in self._requests[key] if t > cutoff]

    def is_allowed(self, request: Request) -> Tuple[bool, Optional[Dict]]:
        """
        Check if the request is allowed under rate limiting rules.

        Returns:
            Tuple of (is_allowed, rate_limit_info)
        """
        path = request.url.path

        # Only rate limit write operations
        if request.method in ['GET', 'HEAD', 'OPTIONS']:
            return True, None

        limit, window = self._limit_for(path)
        key = f"{path}:{self._get_rate_limit_key(request)}"

        with self._lock:
            self._cleanup_old_requests(key, window)
            current_count = len(self._requests[key])

            if current_count >= limit:
                oldest_request = min(self._requests[key])
                retry_after = int((oldest_request + timedelta(seconds=window) - utcnow()).total_seconds())
                logger.warning(f"Rate limit exceeded for {key}: {current_count}/{limit} requests")
                return False, {
                    'limit': limit,
                    'remaining': 0,
                    'reset': retry_after,
                    'retry_after': max(1, retry_after)
                }

            self._requests[key].append(utcnow())
            return True, {
                'limit': limit,
                'remaining': limit - current_count - 1,
                'reset': window
            }

    def reset(self):
        with self._lock:
            self._requests.clear()


class RateLimitMiddleware(BaseHTTPMiddleware):
    """FastAPI middleware for rate limiting"""

    def __init__(self, app, limiter: Optional[RateLimiter] = None):
        super().__init__(app)
        self.rate_limiter = limiter or rate_limiter

    async def dispatch(self, request: Request, call_next):
        if not request.url.path.startswith('/api/') or request.url.path in ['/api/health', '/api/v1/health']:
            return await call_next(request)

        is_allowed, rate_info = self.rate_limiter.is_allowed(request)

        if not is_allowed:
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    'detail': 'Too many requests. Please try again later.',
                    'retry_after': rate_info.get('retry_after', 60)
                },
                headers={
                    'Retry-After': str(rate_info.get('retry_after', 60)),
                    'X-RateLimit-Limit': str(rate_info.get('limit', 0)),
                    'X-RateLimit-Remaining': '0',
                    'X-RateLimit-Reset': str(rate_info.get('reset', 60))
                }
            )

        response = await call_next(request)

        if rate_info:
            response.headers['X-RateLimit-Limit'] = str(rate_info['limit'])
            response.headers['X-RateLimit-Remaining'] = str(rate_info['remaining'])
            response.headers['X-RateLimit-Reset'] = str(rate_info['reset'])

        return response


# Singleton instance
rate_limiter = RateLimiter()
