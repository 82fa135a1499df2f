import enum
import logging
from typing import Optional

from starlette.datastructures import MutableHeaders
from starlette.types import Message

from app.core.headers.errors import LifecycleViolation
from app.core.headers.merger import EffectivePolicy

logger = logging.getLogger(__name__)


class ResponsePhase(str, enum.Enum):
    HEADERS_OPEN = "headers-open"
    HEADERS_SENT = "headers-sent"
    BODY_STREAMING = "body-streaming"


class OutgoingResponse:
    """
    Header view of an ASGI response plus where it is in its lifecycle.

    Wraps the header list of an ``http.response.start`` message in place, so
    changes made through ``headers`` are what the server puts on the wire.
    """

    def __init__(self, message: Optional[Message] = None):
        self.phase = ResponsePhase.HEADERS_OPEN
        self.headers = MutableHeaders()
        if message is not None:
            self.bind(message)

    def bind(self, message: Message) -> None:
        """Point this response at the header list of a response start message."""
        message.setdefault("headers", [])
        self.headers = MutableHeaders(scope=message)

    def mark_headers_sent(self) -> None:
        self.phase = ResponsePhase.HEADERS_SENT

    def mark_body_streaming(self) -> None:
        self.phase = ResponsePhase.BODY_STREAMING

    @property
    def headers_open(self) -> bool:
        return self.phase is ResponsePhase.HEADERS_OPEN


class ResponseApplier:
    """Writes an effective policy onto an outgoing response."""

    def apply(self, policy: EffectivePolicy, response: OutgoingResponse) -> None:
        """
        Set every header in ``policy`` on ``response``.

        Any value set earlier for the same name (by the handler or by inner
        middleware) is replaced, leaving exactly one value per header. Calling
        this twice with the same policy leaves the same headers.

        Raises:
            LifecycleViolation: the response headers have already been sent.
        """
        if not response.headers_open:
            raise LifecycleViolation(
                f"Cannot apply security headers: response is in '{response.phase.value}' state"
            )
        for name, value in policy.items():
            # MutableHeaders.__setitem__ drops duplicate entries for the name
            response.headers[name] = value
        logger.debug(f"Applied {len(policy)} security headers to response")
