"""
Cache utilities for the Awards Pool API
Caches JSON payloads of read-heavy odds endpoints
"""

import functools

from flask import current_app, request

from awards_pool import cache


def make_cache_key(*args, **kwargs):
    """Generate a cache key from request path, query string and arguments"""
    path = request.path
    query = request.query_string.decode("utf-8")
    args_str = "_".join(str(arg) for arg in args)
    kwargs_str = "_".join(f"{k}_{v}" for k, v in sorted(kwargs.items()))
    return f"{path}_{query}_{args_str}_{kwargs_str}".replace("/", "_")


def cached_route(timeout=None, key_prefix="view"):
    """
    Decorator for caching route payloads

    The wrapped view must return a dict or list (optionally with a status);
    only successful payloads are cached.

    Args:
        timeout: Cache timeout in seconds (default ODDS_CACHE_TIMEOUT)
        key_prefix: Prefix for cache key
    """

    def decorator(f):
        @functools.wraps(f)
        def wrapped(*args, **kwargs):
            cache_key = f"{key_prefix}_{make_cache_key(*args, **kwargs)}"

            result = cache.get(cache_key)
            if result is not None:
                current_app.logger.debug(f"Cache hit for key: {cache_key}")
                return result

            result = f(*args, **kwargs)
            if isinstance(result, (dict, list)):
                cache.set(
                    cache_key,
                    result,
                    timeout=timeout or current_app.config.get("ODDS_CACHE_TIMEOUT", 60),
                )
                current_app.logger.debug(f"Cache set for key: {cache_key}")

            return result

        return wrapped

    return decorator


def invalidate_odds_cache():
    """Drop cached odds payloads after new snapshots or winners land"""
    try:
        cache.clear()
        current_app.logger.info("Odds cache cleared")
    except Exception as e:
        current_app.logger.error(f"Failed to clear cache: {e}")
