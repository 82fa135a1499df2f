from dataclasses import dataclass
from typing import Dict, FrozenSet

# Canonical casing for every header the validator knows the grammar of
CONTENT_SECURITY_POLICY = "Content-Security-Policy"
X_CONTENT_TYPE_OPTIONS = "X-Content-Type-Options"
X_FRAME_OPTIONS = "X-Frame-Options"
STRICT_TRANSPORT_SECURITY = "Strict-Transport-Security"
X_XSS_PROTECTION = "X-XSS-Protection"
REFERRER_POLICY = "Referrer-Policy"
PERMISSIONS_POLICY = "Permissions-Policy"

KNOWN_HEADERS: Dict[str, str] = {
    name.lower(): name
    for name in (
        CONTENT_SECURITY_POLICY,
        X_CONTENT_TYPE_OPTIONS,
        X_FRAME_OPTIONS,
        STRICT_TRANSPORT_SECURITY,
        X_XSS_PROTECTION,
        REFERRER_POLICY,
        PERMISSIONS_POLICY,
    )
}

REFERRER_POLICIES: FrozenSet[str] = frozenset({
    "",
    "no-referrer",
    "no-referrer-when-downgrade",
    "origin",
    "origin-when-cross-origin",
    "same-origin",
    "strict-origin",
    "strict-origin-when-cross-origin",
    "unsafe-url",
})

PERMISSIONS_FEATURES: FrozenSet[str] = frozenset({
    "accelerometer",
    "ambient-light-sensor",
    "autoplay",
    "battery",
    "bluetooth",
    "browsing-topics",
    "camera",
    "clipboard-read",
    "clipboard-write",
    "compute-pressure",
    "display-capture",
    "document-domain",
    "encrypted-media",
    "fullscreen",
    "gamepad",
    "geolocation",
    "gyroscope",
    "hid",
    "identity-credentials-get",
    "idle-detection",
    "interest-cohort",
    "keyboard-map",
    "local-fonts",
    "magnetometer",
    "microphone",
    "midi",
    "otp-credentials",
    "payment",
    "picture-in-picture",
    "publickey-credentials-create",
    "publickey-credentials-get",
    "screen-wake-lock",
    "serial",
    "speaker-selection",
    "storage-access",
    "sync-xhr",
    "usb",
    "web-share",
    "window-management",
    "xr-spatial-tracking",
})

# Directives that take a source list
CSP_FETCH_DIRECTIVES: FrozenSet[str] = frozenset({
    "base-uri",
    "child-src",
    "connect-src",
    "default-src",
    "font-src",
    "form-action",
    "frame-ancestors",
    "frame-src",
    "img-src",
    "manifest-src",
    "media-src",
    "object-src",
    "prefetch-src",
    "script-src",
    "script-src-attr",
    "script-src-elem",
    "style-src",
    "style-src-attr",
    "style-src-elem",
    "worker-src",
})

CSP_FLAG_DIRECTIVES: FrozenSet[str] = frozenset({
    "upgrade-insecure-requests",
    "block-all-mixed-content",
})

CSP_OTHER_DIRECTIVES: FrozenSet[str] = frozenset({
    "sandbox",
    "report-uri",
    "report-to",
    "require-trusted-types-for",
    "trusted-types",
})

CSP_DIRECTIVES: FrozenSet[str] = CSP_FETCH_DIRECTIVES | CSP_FLAG_DIRECTIVES | CSP_OTHER_DIRECTIVES

CSP_KEYWORD_SOURCES: FrozenSet[str] = frozenset({
    "'self'",
    "'none'",
    "'unsafe-inline'",
    "'unsafe-eval'",
    "'unsafe-hashes'",
    "'strict-dynamic'",
    "'report-sample'",
    "'wasm-unsafe-eval'",
})

CSP_SANDBOX_FLAGS: FrozenSet[str] = frozenset({
    "allow-downloads",
    "allow-forms",
    "allow-modals",
    "allow-orientation-lock",
    "allow-pointer-lock",
    "allow-popups",
    "allow-popups-to-escape-sandbox",
    "allow-presentation",
    "allow-same-origin",
    "allow-scripts",
    "allow-storage-access-by-user-activation",
    "allow-top-navigation",
    "allow-top-navigation-by-user-activation",
    "allow-top-navigation-to-custom-protocols",
})


@dataclass(frozen=True)
class Directive:
    """A single validated header instruction with its name in canonical casing."""
    name: str
    value: str


def canonical_name(name: str) -> str:
    """
    Return the canonical casing for a header name.

    Known security headers use their registered spelling (``X-XSS-Protection``);
    anything else is capitalized per hyphen-separated segment.
    """
    stripped = name.strip()
    known = KNOWN_HEADERS.get(stripped.lower())
    if known is not None:
        return known
    return "-".join(part.capitalize() for part in stripped.split("-"))
