"""
Redis-based rate limiting for API endpoints.

Fixed-window counter per caller: the key is the resolved actor when the
request carries actor headers, otherwise the client IP.
"""
import logging
from functools import wraps

import redis
from django.conf import settings
from rest_framework import status
from rest_framework.response import Response

logger = logging.getLogger(__name__)

_redis_client = None
_redis_checked = False


def get_redis_client():
    """Connect lazily; returns None when Redis is unreachable."""
    global _redis_client, _redis_checked
    if _redis_checked:
        return _redis_client
    _redis_checked = True
    try:
        client = redis.Redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=5
        )
        client.ping()
        _redis_client = client
    except (redis.ConnectionError, redis.TimeoutError) as e:
        logger.warning(f"Redis connection failed: {e}. Rate limiting will be disabled.")
        _redis_client = None
    return _redis_client


def get_client_ip(request):
    """Extract client IP address from request."""
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        return x_forwarded_for.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR', 'unknown')


def get_caller_key(request):
    role = request.headers.get('X-Actor-Role', '').strip().upper()
    actor_id = request.headers.get('X-Actor-Id', '').strip()
    if role and actor_id:
        return f"{role}:{actor_id}"
    return f"ip:{get_client_ip(request)}"


def _limited_response(max_requests, window_seconds, ttl):
    return Response(
        {
            'error': 'Rate limit exceeded',
            'detail': f'Maximum {max_requests} requests per {window_seconds} seconds allowed.',
            'retry_after': ttl
        },
        status=status.HTTP_429_TOO_MANY_REQUESTS,
        headers={
            'X-RateLimit-Limit': str(max_requests),
            'X-RateLimit-Remaining': '0',
            'X-RateLimit-Reset': str(ttl),
            'Retry-After': str(ttl)
        }
    )


def check_rate_limit(request, scope, max_requests, window_seconds, call_next):
    """
    Count this request against the caller's window for `scope` and either
    reject it with 429 or run `call_next()` and decorate its response.
    Fails open when Redis errors.
    """
    if not getattr(settings, 'RATE_LIMIT_ENABLED', True):
        return call_next()
    client = get_redis_client()
    if client is None:
        return call_next()

    try:
        key = f"rate_limit:{scope}:{get_caller_key(request)}"
        current_count = client.incr(key)
        if current_count == 1:
            client.expire(key, window_seconds)
        ttl = client.ttl(key)
    except redis.RedisError as e:
        logger.error(f"Redis error in rate limiting: {e}")
        return call_next()

    if current_count > max_requests:
        logger.warning(f"Rate limit exceeded for {key}")
        return _limited_response(max_requests, window_seconds, ttl)

    response = call_next()
    response['X-RateLimit-Limit'] = str(max_requests)
    response['X-RateLimit-Remaining'] = str(max(0, max_requests - current_count))
    response['X-RateLimit-Reset'] = str(ttl)
    return response


def rate_limit(max_requests: int = 20, window_seconds: int = 60):
    """
    Rate limiting decorator for DRF view methods.

    Usage:
        @rate_limit(20, 60)  # 20 requests per minute
        def get(self, request):
            ...
    """
    def decorator(view_func):
        @wraps(view_func)
        def wrapper(self, request, *args, **kwargs):
            return check_rate_limit(
                request,
                view_func.__qualname__,
                max_requests,
                window_seconds,
                lambda: view_func(self, request, *args, **kwargs)
            )
        return wrapper
    return decorator
