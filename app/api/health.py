from fastapi import APIRouter, Request, Response, status
from typing import Any, Dict

from app.core.headers.registry import HeaderPolicy

router = APIRouter(tags=["health"])

def _header_policy(request: Request) -> HeaderPolicy:
    return request.app.state.header_policy

@router.get("/health")
async def health_check(request: Request) -> Dict[str, Any]:
    """
    Health check endpoint reporting the security header policy currently in force.
    """
    snapshot = _header_policy(request).snapshot
    return {
        "status": "ok",
        "security_headers": {
            "directives": list(snapshot.store.names()),
            "route_overrides": [route.pattern for route in snapshot.routes],
        },
    }

@router.get("/healthz/live", include_in_schema=False)
async def liveness_check() -> Dict[str, str]:
    """
    Liveness probe endpoint for Kubernetes/container orchestrators.
    Returns 200 OK as long as the application is running.
    """
    return {"status": "alive"}

@router.get("/healthz/ready", include_in_schema=False)
async def readiness_check(request: Request, response: Response) -> Dict[str, str]:
    """
    Readiness probe endpoint for Kubernetes/container orchestrators.
    The service is ready once a security header policy has been loaded; an
    empty policy means responses would go out without any protection.
    """
    policy = getattr(request.app.state, "header_policy", None)
    if policy is None or len(policy.store) == 0:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "not ready", "security_headers": "missing"}
    return {"status": "ready", "security_headers": "loaded"}
