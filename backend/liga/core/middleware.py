"""
Request Middleware
Provides request_id injection, the global error boundary, the origin policy,
security headers, rate limiting and JSON body parsing.
"""
import json
import time
from typing import Callable, Dict, Optional

from fastapi import Request, Response
from fastapi.exception_handlers import http_exception_handler as default_http_exception_handler
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.datastructures import Headers
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.cors import CORSMiddleware
from starlette.types import ASGIApp, Receive, Scope, Send
from starlette.websockets import WebSocketClose

from liga.core.logging import (
    generate_request_id,
    request_id_var,
    request_start_var,
    api_logger,
)
from liga.core.rate_limit_config import RateLimit, RateLimitSettings
from liga.core.rate_limiter import InMemoryRateLimiter, RateLimitResult, get_client_ip
from liga.core.security import OriginPolicy, SECURITY_HEADERS

NOT_FOUND_MESSAGE = 'Ruta no encontrada'
SERVER_ERROR_MESSAGE = 'Ocurrió un error en el servidor'
CORS_REJECTED_MESSAGE = 'Not allowed by CORS'
RATE_LIMITED_MESSAGE = 'Demasiadas solicitudes, inténtalo de nuevo más tarde.'
MALFORMED_JSON_MESSAGE = 'JSON mal formado'
BODY_TOO_LARGE_MESSAGE = 'Cuerpo de la solicitud demasiado grande'


def error_response(status_code: int, message: str, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={'error': message}, headers=headers)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Outermost middleware:
    1. Generates/propagates request_id for tracing
    2. Logs request/response summary at http level
    3. Converts anything raised downstream into the generic 500 body
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get('X-Request-ID') or generate_request_id()

        request_id_var.set(request_id)
        request_start_var.set(time.time())
        request.state.request_id = request_id

        path = request.url.path
        client = request.client.host if request.client else 'unknown'

        try:
            response = await call_next(request)

            response.headers['X-Request-ID'] = request_id

            duration = round((time.time() - request_start_var.get()) * 1000, 2)
            api_logger.http(
                f"{request.method} {path} -> {response.status_code}",
                client=client,
                duration_ms=duration,
                status=response.status_code,
            )
            return response

        except Exception as e:
            duration = round((time.time() - request_start_var.get()) * 1000, 2)
            api_logger.error(
                f"{request.method} {path} -> 500 (unhandled)",
                error=e,
                duration_ms=duration,
            )
            return error_response(
                500,
                SERVER_ERROR_MESSAGE,
                headers={**SECURITY_HEADERS, 'X-Request-ID': request_id},
            )
        finally:
            request_id_var.set(None)
            request_start_var.set(None)


class OriginNotAllowed(Exception):
    """Raised for a request whose Origin fails the policy."""

    def __init__(self, origin: str):
        super().__init__(f"{CORS_REJECTED_MESSAGE}: {origin}")
        self.origin = origin


class OriginPolicyMiddleware(CORSMiddleware):
    """
    CORS with a prefix/suffix origin rule.

    Disallowed origins never reach a handler: the rejection is raised to the
    error boundary, which answers with the generic 500 body. Allowed origins
    get the usual CORS response headers and preflight answers.
    """

    def __init__(self, app: ASGIApp, policy: OriginPolicy, allow_methods=('GET',)):
        super().__init__(
            app,
            allow_methods=allow_methods,
            allow_headers=['*'],
            allow_credentials=True,
        )
        self.policy = policy

    def is_allowed_origin(self, origin: str) -> bool:
        return bool(origin) and self.policy.allows(origin)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope['type'] == 'http':
            origin = Headers(scope=scope).get('origin')
            if not self.policy.allows(origin):
                api_logger.error(f"Blocked by CORS: {origin}", path=scope.get('path'))
                raise OriginNotAllowed(origin)
        await super().__call__(scope, receive, send)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Inject the baseline hardening headers without overriding handler-set values."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response


def rate_limit_headers(result: RateLimitResult, limit: RateLimit) -> Dict[str, str]:
    """Standard `RateLimit-*` headers (no legacy `X-RateLimit-*`)."""
    return {
        'RateLimit-Policy': limit.policy,
        'RateLimit-Limit': str(result.limit),
        'RateLimit-Remaining': str(result.remaining),
        'RateLimit-Reset': str(result.reset_after),
    }


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Applies the global per-client limit to every request.
    Returns 429 with Retry-After once a client exhausts its window.
    """

    def __init__(
        self,
        app: ASGIApp,
        limiter: InMemoryRateLimiter,
        limit: RateLimit,
        config: RateLimitSettings,
    ):
        super().__init__(app)
        self.limiter = limiter
        self.limit = limit
        self.config = config

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not self.config.enabled:
            return await call_next(request)

        client_ip = get_client_ip(request, self.config.real_ip_header)
        if client_ip in self.config.whitelist_ips:
            return await call_next(request)

        result = await self.limiter.check_rate_limit(f"ip:{client_ip}", self.limit)
        headers = rate_limit_headers(result, self.limit)

        if not result.allowed:
            api_logger.warn(
                f"Rate limit exceeded for IP {client_ip}",
                path=request.url.path,
                limit=result.limit,
                reset_after=result.reset_after,
            )
            headers['Retry-After'] = str(result.retry_after)
            return error_response(429, RATE_LIMITED_MESSAGE, headers=headers)

        response = await call_next(request)
        response.headers.update(headers)
        return response


def is_json_content_type(content_type: str) -> bool:
    media_type = content_type.split(';', 1)[0].strip().lower()
    return media_type == 'application/json' or media_type.endswith('+json')


class JsonBodyMiddleware(BaseHTTPMiddleware):
    """
    Parse JSON request bodies up front.

    The decoded value is left on `request.state.json`; malformed JSON is a 400
    and bodies over the size limit a 413, so handlers only see valid input.
    """

    def __init__(self, app: ASGIApp, limit_bytes: int):
        super().__init__(app)
        self.limit_bytes = limit_bytes

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request.state.json = None

        if not is_json_content_type(request.headers.get('content-type', '')):
            return await call_next(request)

        declared = request.headers.get('content-length', '')
        if declared.isdigit() and int(declared) > self.limit_bytes:
            return self._too_large(request)

        body = await request.body()
        if len(body) > self.limit_bytes:
            return self._too_large(request)

        if body:
            try:
                request.state.json = json.loads(body)
            except ValueError as e:
                api_logger.warn(f"Malformed JSON body on {request.method} {request.url.path}", reason=str(e))
                return error_response(400, MALFORMED_JSON_MESSAGE)

        return await call_next(request)

    def _too_large(self, request: Request) -> JSONResponse:
        api_logger.warn(
            f"Request body too large on {request.method} {request.url.path}",
            limit=self.limit_bytes,
        )
        return error_response(413, BODY_TOO_LARGE_MESSAGE)


class RouteNotFound(StarletteHTTPException):
    """No route or public file claimed the request."""

    def __init__(self):
        super().__init__(status_code=404)


async def route_not_found(scope: Scope, receive: Receive, send: Send) -> None:
    """Router fallback used when no route or mount matches."""
    if scope['type'] == 'websocket':
        await WebSocketClose()(scope, receive, send)
        return
    raise RouteNotFound()


class PublicFiles(StaticFiles):
    """StaticFiles whose misses surface as `RouteNotFound`."""

    async def get_response(self, path: str, scope: Scope) -> Response:
        try:
            return await super().get_response(path, scope)
        except StarletteHTTPException as exc:
            if exc.status_code in (404, 405):
                raise RouteNotFound() from exc
            raise


def is_unrouted(request: Request, exc: StarletteHTTPException) -> bool:
    """True for a routing miss, as opposed to a handler's HTTPException."""
    if isinstance(exc, RouteNotFound):
        return True
    # Route.handle answers a method mismatch with 405 and the route's Allow list
    if exc.status_code == 405 and exc.headers and 'Allow' in exc.headers:
        allowed = [m.strip() for m in exc.headers['Allow'].split(',')]
        return request.method not in allowed
    return False


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> Response:
    """
    Unmatched routes get the uniform 404 body.
    HTTPExceptions raised by route collaborators keep their own contract.
    """
    if is_unrouted(request, exc):
        api_logger.debug(f"No route for {request.method} {request.url.path}")
        return error_response(404, NOT_FOUND_MESSAGE)
    return await default_http_exception_handler(request, exc)
