import logging
from pathlib import Path
from typing import List

from app.core.config import Settings
from app.core.headers.errors import PolicyValidationError
from app.core.headers.overrides import REMOVE, RouteOverride
from app.core.headers.registry import HeaderPolicy
from app.core.headers.store import PolicyStore
from app.core.headers.validator import DirectiveValidator
from app.core.schemas.header_policy import HeaderPolicyConfig, RouteOverrideSettings

logger = logging.getLogger(__name__)


def load_policy_config(settings: Settings) -> HeaderPolicyConfig:
    """
    Read the header policy configuration.

    A policy file, when configured, replaces the policy given through settings
    and environment variables.
    """
    if settings.SECURITY_HEADERS_POLICY_FILE:
        path = Path(settings.SECURITY_HEADERS_POLICY_FILE)
        logger.info(f"Loading security header policy from {path}")
        return HeaderPolicyConfig.model_validate_json(path.read_text(encoding="utf-8"))

    return HeaderPolicyConfig(
        headers=settings.SECURITY_HEADERS,
        routes=settings.SECURITY_HEADERS_ROUTES,
        allow_custom=settings.SECURITY_HEADERS_ALLOW_CUSTOM,
    )


def build_route_overrides(routes: List[RouteOverrideSettings], validator: DirectiveValidator) -> List[RouteOverride]:
    overrides = []
    for route in routes:
        entries = dict(route.headers)
        for name in route.remove:
            entries[name] = REMOVE
        overrides.append(RouteOverride.build(route.pattern, entries, validator, protect=route.protect))
    return overrides


def build_header_policy(config: HeaderPolicyConfig) -> HeaderPolicy:
    """Validate a configuration and build the policy from it, all or nothing."""
    validator = DirectiveValidator(allow_custom=config.allow_custom)
    store = PolicyStore.build(config.headers, validator)
    routes = build_route_overrides(config.routes, validator)
    logger.info(f"Security header policy built with {len(store)} directives and {len(routes)} route overrides")
    return HeaderPolicy(store, validator, routes=routes)


def reload_header_policy(policy: HeaderPolicy, settings: Settings) -> None:
    """
    Re-read configuration and swap it into ``policy``.

    Every directive and route override is validated before the swap; on any
    failure the error propagates and requests keep using the current policy.
    """
    config = load_policy_config(settings)
    if config.allow_custom != policy.validator.allow_custom:
        logger.warning("Changing allow_custom requires a restart; keeping the current setting")
    try:
        routes = build_route_overrides(config.routes, policy.validator)
    except PolicyValidationError as e:
        logger.error(f"Security header route overrides rejected, keeping current policy: {e}")
        raise
    policy.reload(config.headers, routes=routes)
