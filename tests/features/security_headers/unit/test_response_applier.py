import pytest

from app.core.headers.applier import OutgoingResponse, ResponseApplier, ResponsePhase
from app.core.headers.errors import LifecycleViolation
from app.core.headers.merger import merge
from app.core.headers.overrides import REMOVE, RouteOverride
from app.core.headers.store import PolicyStore


def start_message(*headers):
    return {"type": "http.response.start", "status": 201, "headers": list(headers)}


@pytest.fixture
def policy():
    return merge(PolicyStore.build({
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
    }))


@pytest.mark.unit
def test_apply_writes_every_header(policy):
    message = start_message((b"content-type", b"application/json"))
    ResponseApplier().apply(policy, OutgoingResponse(message))

    assert message["headers"] == [
        (b"content-type", b"application/json"),
        (b"x-content-type-options", b"nosniff"),
        (b"x-frame-options", b"DENY"),
    ]


@pytest.mark.unit
def test_apply_overwrites_prior_values_for_same_name(policy):
    message = start_message(
        (b"x-frame-options", b"ALLOWALL"),
        (b"x-frame-options", b"SAMEORIGIN"),
    )
    response = OutgoingResponse(message)

    ResponseApplier().apply(policy, response)

    assert response.headers.getlist("X-Frame-Options") == ["DENY"]


@pytest.mark.unit
def test_apply_is_idempotent(policy):
    message = start_message((b"x-frame-options", b"SAMEORIGIN"))
    response = OutgoingResponse(message)
    applier = ResponseApplier()

    applier.apply(policy, response)
    first = list(message["headers"])
    applier.apply(policy, response)

    assert message["headers"] == first
    for name, value in policy:
        assert response.headers.getlist(name) == [value]


@pytest.mark.unit
def test_apply_touches_only_headers(policy):
    message = start_message()
    ResponseApplier().apply(policy, OutgoingResponse(message))

    assert message["status"] == 201
    assert set(message) == {"type", "status", "headers"}


@pytest.mark.unit
def test_apply_handles_messages_without_header_list(policy):
    message = {"type": "http.response.start", "status": 200}
    ResponseApplier().apply(policy, OutgoingResponse(message))
    assert (b"x-frame-options", b"DENY") in message["headers"]


@pytest.mark.unit
def test_empty_string_value_is_written():
    policy = merge(PolicyStore.build({"Referrer-Policy": ""}))
    response = OutgoingResponse(start_message())

    ResponseApplier().apply(policy, response)

    assert response.headers.getlist("Referrer-Policy") == [""]


@pytest.mark.unit
def test_removed_header_is_not_written():
    base = PolicyStore.build({"Referrer-Policy": "strict-origin", "X-Frame-Options": "DENY"})
    policy = merge(base, RouteOverride.build("/legacy", {"Referrer-Policy": REMOVE}))
    response = OutgoingResponse(start_message())

    ResponseApplier().apply(policy, response)

    assert "Referrer-Policy" not in response.headers
    assert response.headers["X-Frame-Options"] == "DENY"


@pytest.mark.unit
@pytest.mark.parametrize("advance", ["mark_headers_sent", "mark_body_streaming"])
def test_apply_after_headers_sent_is_a_lifecycle_violation(policy, advance):
    response = OutgoingResponse(start_message())
    getattr(response, advance)()

    with pytest.raises(LifecycleViolation):
        ResponseApplier().apply(policy, response)


@pytest.mark.unit
def test_response_lifecycle_progresses():
    response = OutgoingResponse()
    assert response.phase is ResponsePhase.HEADERS_OPEN
    response.mark_headers_sent()
    assert response.phase is ResponsePhase.HEADERS_SENT
    response.mark_body_streaming()
    assert response.phase is ResponsePhase.BODY_STREAMING
    assert not response.headers_open
