import contextvars
from typing import Optional

# Context variables carried through each request for logging
request_id_ctx_var = contextvars.ContextVar[Optional[str]]("request_id", default=None)
policy_route_ctx_var = contextvars.ContextVar[Optional[str]]("policy_route", default=None)

def get_request_id() -> Optional[str]:
    """Get the current request ID from the context variable."""
    return request_id_ctx_var.get()

def set_request_id(request_id: str) -> contextvars.Token:
    """Set the request ID in the context variable."""
    return request_id_ctx_var.set(request_id)

def get_policy_route() -> Optional[str]:
    """Get the route pattern whose security header override applies to the current request."""
    return policy_route_ctx_var.get()

def set_policy_route(pattern: Optional[str]) -> contextvars.Token:
    return policy_route_ctx_var.set(pattern)
