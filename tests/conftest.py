import pytest
from typing import AsyncGenerator, Callable, Mapping
from httpx import ASGITransport, AsyncClient
from fastapi import FastAPI, Response
from fastapi.responses import StreamingResponse

from app.main import app  # The service's FastAPI application instance
from app.core.headers.registry import HeaderPolicy
from app.core.headers.validator import DirectiveValidator
from app.core.middleware.security_headers import SecurityHeadersMiddleware


@pytest.fixture
def validator() -> DirectiveValidator:
    """Validator in the default mode (known security headers only)."""
    return DirectiveValidator()


@pytest.fixture
def make_policy() -> Callable[..., HeaderPolicy]:
    """Factory for a HeaderPolicy built from a plain mapping of directives."""
    def _make(directives: Mapping[str, str], allow_custom: bool = False) -> HeaderPolicy:
        return HeaderPolicy.from_directives(directives, allow_custom=allow_custom)
    return _make


def build_policy_app(policy: HeaderPolicy) -> FastAPI:
    """
    A small application with the header policy installed and a handful of routes
    exercising the interesting response shapes.
    """
    policy_app = FastAPI()

    @policy_app.get("/plain")
    async def plain():
        return {"ok": True}

    @policy_app.get("/framed")
    async def framed():
        # An incidental default set by the handler; the policy must win
        return Response(content="framed", headers={"X-Frame-Options": "ALLOWALL"})

    @policy_app.get("/embed/{widget_id}")
    async def embed(widget_id: str):
        return {"widget": widget_id}

    @policy_app.get("/legacy")
    async def legacy():
        return {"legacy": True}

    @policy_app.get("/stream")
    async def stream():
        async def chunks():
            for part in (b"one,", b"two,", b"three"):
                yield part
        return StreamingResponse(chunks(), media_type="text/plain")

    policy_app.add_middleware(SecurityHeadersMiddleware, policy=policy)
    return policy_app


@pytest.fixture
def policy_app_factory() -> Callable[[HeaderPolicy], FastAPI]:
    return build_policy_app


@pytest.fixture(scope="function")
async def test_client() -> AsyncGenerator[AsyncClient, None]:
    """Provides an httpx.AsyncClient for making API requests to the service app."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
