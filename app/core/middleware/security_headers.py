import logging
from typing import Dict

from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from app.core.headers.applier import OutgoingResponse, ResponseApplier
from app.core.headers.errors import LifecycleViolation
from app.core.headers.merger import merge
from app.core.headers.registry import HeaderPolicy
from app.core.request_context import policy_route_ctx_var, set_policy_route

logger = logging.getLogger(__name__)

# Scope key shared between SecurityHeadersMiddleware and ProtectedHeadersMiddleware
PROTECTED_HEADERS_SCOPE_KEY = "security_headers.protected"


class SecurityHeadersMiddleware:
    """
    Applies the active security header policy to every HTTP response.

    Pure ASGI so streaming responses and background tasks are untouched. The
    effective policy is resolved once when the request arrives, from the
    snapshot active at that moment, and written onto the response start
    message before it reaches the server.
    """

    def __init__(self, app: ASGIApp, policy: HeaderPolicy):
        self.app = app
        self.policy = policy
        self.applier = ResponseApplier()

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        snapshot = self.policy.snapshot
        override = snapshot.override_for(scope["path"])
        effective = merge(snapshot.store, override)
        response = OutgoingResponse()
        protected: Dict[str, str] = scope.get(PROTECTED_HEADERS_SCOPE_KEY, {})

        async def send_with_policy(message: Message) -> None:
            if message["type"] == "http.response.start":
                if response.headers_open:
                    response.bind(message)
                try:
                    self.applier.apply(effective, response)
                except LifecycleViolation:
                    logger.error(
                        f"Response for {scope.get('method')} {scope['path']} started twice; aborting request",
                        exc_info=True,
                    )
                    raise
                response.mark_headers_sent()
                for name in effective.protected:
                    protected[name] = effective.get(name)
            elif message["type"] == "http.response.body":
                response.mark_body_streaming()
            await send(message)

        token = set_policy_route(override.pattern if override is not None else None)
        try:
            await self.app(scope, receive, send_with_policy)
        finally:
            policy_route_ctx_var.reset(token)


class ProtectedHeadersMiddleware:
    """
    Re-asserts protected security headers after all inner middleware ran.

    Must be the outermost middleware. Headers a route override marks as
    protected keep the policy's value even if middleware between this one and
    SecurityHeadersMiddleware rewrites them; everything else is last write wins.
    """

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        protected: Dict[str, str] = {}
        scope[PROTECTED_HEADERS_SCOPE_KEY] = protected

        async def send_with_guard(message: Message) -> None:
            if message["type"] == "http.response.start" and protected:
                message.setdefault("headers", [])
                headers = MutableHeaders(scope=message)
                for name, value in protected.items():
                    if headers.get(name) != value or len(headers.getlist(name)) > 1:
                        logger.warning(f"Restoring protected security header '{name}' changed by later middleware")
                        headers[name] = value
            await send(message)

        await self.app(scope, receive, send_with_guard)
