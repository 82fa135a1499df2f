import pytest

from app.core.headers.errors import PolicyValidationError
from app.core.headers.merger import EffectivePolicy, merge
from app.core.headers.overrides import REMOVE, RemoveHeader, RouteOverride, SetHeader
from app.core.headers.store import PolicyStore


@pytest.fixture
def base() -> PolicyStore:
    return PolicyStore.build({
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "Referrer-Policy": "strict-origin",
    })


@pytest.mark.unit
def test_merge_without_override_is_the_base_policy(base: PolicyStore):
    effective = merge(base, None)
    assert isinstance(effective, EffectivePolicy)
    assert effective.items() == base.all()
    assert effective.protected == frozenset()


@pytest.mark.unit
def test_override_replaces_value():
    base = PolicyStore.build({"X-Frame-Options": "DENY"})
    override = RouteOverride.build("/embed", {"X-Frame-Options": "SAMEORIGIN"})

    effective = merge(base, override)

    assert effective.get("X-Frame-Options") == "SAMEORIGIN"
    assert len(effective) == 1


@pytest.mark.unit
def test_override_adds_new_directive(base: PolicyStore):
    override = RouteOverride.build("/secure", {"Strict-Transport-Security": "max-age=600"})

    effective = merge(base, override)

    assert effective.get("Strict-Transport-Security") == "max-age=600"
    assert len(effective) == 4


@pytest.mark.unit
def test_remove_marker_drops_directive():
    base = PolicyStore.build({"Referrer-Policy": "strict-origin"})
    override = RouteOverride.build("/legacy", {"Referrer-Policy": REMOVE})

    effective = merge(base, override)

    assert "Referrer-Policy" not in effective
    assert effective.items() == ()


@pytest.mark.unit
def test_empty_value_is_not_removal(base: PolicyStore):
    override = RouteOverride.build("/quiet", {"Referrer-Policy": SetHeader("")})

    effective = merge(base, override)

    assert "Referrer-Policy" in effective
    assert effective.get("Referrer-Policy") == ""


@pytest.mark.unit
def test_remove_marker_is_a_singleton():
    assert RemoveHeader() is REMOVE


@pytest.mark.unit
def test_removing_absent_directive_is_harmless(base: PolicyStore):
    override = RouteOverride.build("/x", {"Permissions-Policy": REMOVE})
    assert merge(base, override).items() == base.all()


@pytest.mark.unit
def test_merge_is_deterministic(base: PolicyStore):
    override = RouteOverride.build(
        "/mixed",
        {"X-Frame-Options": "SAMEORIGIN", "Referrer-Policy": REMOVE, "X-XSS-Protection": "0"},
        protect=["X-Frame-Options"],
    )

    first = merge(base, override)
    second = merge(base, override)

    assert first == second
    assert first.items() == second.items()


@pytest.mark.unit
def test_merge_leaves_base_untouched(base: PolicyStore):
    before = base.all()
    merge(base, RouteOverride.build("/x", {"X-Frame-Options": REMOVE}))
    assert base.all() == before


@pytest.mark.unit
def test_only_present_headers_are_protected(base: PolicyStore):
    override = RouteOverride.build(
        "/embed",
        {"X-Frame-Options": "SAMEORIGIN"},
        protect=["x-frame-options", "Permissions-Policy"],
    )

    effective = merge(base, override)

    assert effective.protected == frozenset({"X-Frame-Options"})


@pytest.mark.unit
def test_cannot_protect_a_removed_header():
    with pytest.raises(PolicyValidationError) as exc_info:
        RouteOverride.build("/legacy", {"Referrer-Policy": REMOVE}, protect=["Referrer-Policy"])
    assert exc_info.value.name == "Referrer-Policy"


@pytest.mark.unit
def test_override_entries_are_validated_at_registration():
    with pytest.raises(PolicyValidationError):
        RouteOverride.build("/embed", {"X-Frame-Options": "MAYBE"})
    with pytest.raises(PolicyValidationError):
        RouteOverride.build("/embed", {"X-Not-A-Security-Header": REMOVE})


@pytest.mark.unit
def test_override_stores_tagged_entries_only():
    override = RouteOverride.build("/embed", {"x-frame-options": "SAMEORIGIN", "Referrer-Policy": REMOVE})

    assert override.entries == {"X-Frame-Options": SetHeader("SAMEORIGIN"), "Referrer-Policy": REMOVE}
    assert override.removes("referrer-policy")


@pytest.mark.unit
def test_route_patterns_use_path_parameters():
    override = RouteOverride.build("/embed/{widget_id}", {"X-Frame-Options": "SAMEORIGIN"})
    nested = RouteOverride.build("/static/{path:path}", {"X-Frame-Options": "SAMEORIGIN"})

    assert override.matches("/embed/42")
    assert not override.matches("/embed/42/extra")
    assert not override.matches("/embed")
    assert nested.matches("/static/css/site.css")
    assert not RouteOverride.empty().matches("/embed/42")


@pytest.mark.unit
@pytest.mark.parametrize("pattern", ["/embed/{widget_id:nope}", "/embed/{widget_id}/{widget_id}"])
def test_malformed_route_pattern_is_a_validation_error(pattern: str):
    with pytest.raises(PolicyValidationError) as exc_info:
        RouteOverride.build(pattern, {"X-Frame-Options": "SAMEORIGIN"})

    assert exc_info.value.name == pattern
    assert "invalid route pattern" in exc_info.value.reason
