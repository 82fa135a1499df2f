import re
from typing import Callable, Dict, List

from app.core.headers import directives as d
from app.core.headers.directives import Directive
from app.core.headers.errors import CSPSyntaxError, PolicyValidationError

# RFC 7230 "token" characters
_HEADER_NAME = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0a-\x1f\x7f]")

_CSP_DIRECTIVE_NAME = re.compile(r"^[a-z][a-z0-9-]*$")
_CSP_SCHEME_SOURCE = re.compile(r"^[a-z][a-z0-9+.\-]*:$", re.IGNORECASE)
_CSP_HOST_SOURCE = re.compile(
    r"^(?:[a-z][a-z0-9+.\-]*://)?"
    r"(?:\*|(?:\*\.)?[a-z0-9](?:[a-z0-9\-]*[a-z0-9])?(?:\.[a-z0-9](?:[a-z0-9\-]*[a-z0-9])?)*)"
    r"(?::(?:\d{1,5}|\*))?"
    r"(?:/[^\s;,']*)?$",
    re.IGNORECASE,
)
_CSP_NONCE_SOURCE = re.compile(r"^'nonce-[A-Za-z0-9+/_\-]+={0,2}'$")
_CSP_HASH_SOURCE = re.compile(r"^'sha(?:256|384|512)-[A-Za-z0-9+/_\-]+={0,2}'$")
_CSP_REPORT_URI = re.compile(r"^(?:https?://[^\s;,]+|/[^\s;,]*)$", re.IGNORECASE)
_CSP_REPORT_GROUP = re.compile(r"^[A-Za-z0-9_\-]+$")
_CSP_TRUSTED_TYPE_POLICY = re.compile(r"^[A-Za-z0-9\-#=_/@.%]+$")

_HSTS_MAX_AGE = re.compile(r'^max-age\s*=\s*("?)([^"]*)\1$', re.IGNORECASE)
_XSS_PROTECTION = re.compile(r"^(?:0|1|1\s*;\s*mode=block)$")
_FRAME_ALLOW_FROM = re.compile(r"^ALLOW-FROM\s+(\S+)$", re.IGNORECASE)
_HTTP_ORIGIN = re.compile(r"^https?://[a-z0-9.\-]+(?::\d{1,5})?/?$", re.IGNORECASE)
_PERMISSIONS_ENTRY = re.compile(r"^([a-z0-9\-]+)=(.*)$")
_PERMISSIONS_ORIGIN = re.compile(r'^"https?://[a-z0-9.\-*]+(?::\d{1,5})?"$', re.IGNORECASE)


class DirectiveValidator:
    """
    Validates security header directives before they are accepted into a policy.

    Each recognized header is checked against its own grammar; unknown header
    names are rejected unless ``allow_custom`` is set, in which case only the
    generic name and value rules apply. Validation is a pure function of its
    inputs: the same ``(name, value)`` always passes or always fails.
    """

    def __init__(self, allow_custom: bool = False):
        self.allow_custom = allow_custom
        self._grammars: Dict[str, Callable[[str], None]] = {
            d.CONTENT_SECURITY_POLICY: self._check_content_security_policy,
            d.X_CONTENT_TYPE_OPTIONS: self._check_content_type_options,
            d.X_FRAME_OPTIONS: self._check_frame_options,
            d.STRICT_TRANSPORT_SECURITY: self._check_strict_transport_security,
            d.X_XSS_PROTECTION: self._check_xss_protection,
            d.REFERRER_POLICY: self._check_referrer_policy,
            d.PERMISSIONS_POLICY: self._check_permissions_policy,
        }

    def normalize_name(self, name: str) -> str:
        """Return the canonical header name, or raise if it is not acceptable."""
        if not isinstance(name, str) or not _HEADER_NAME.match(name.strip()):
            raise PolicyValidationError(str(name), "header name is not a valid HTTP token")
        canonical = d.canonical_name(name)
        if canonical not in self._grammars and not self.allow_custom:
            raise PolicyValidationError(
                canonical, "unknown security header (enable custom headers to allow it)"
            )
        return canonical

    def validate(self, name: str, value: str) -> Directive:
        """
        Validate one directive and return it with its name normalized.

        Raises:
            PolicyValidationError: the name is unknown or the value breaks the
                header's grammar. Content-Security-Policy failures raise the
                more specific CSPSyntaxError.
        """
        canonical = self.normalize_name(name)
        if not isinstance(value, str):
            raise PolicyValidationError(canonical, "value must be a string", repr(value))
        if _CONTROL_CHARS.search(value):
            raise PolicyValidationError(canonical, "value contains control characters", value)
        try:
            value.encode("latin-1")
        except UnicodeEncodeError:
            raise PolicyValidationError(canonical, "value is not latin-1 encodable", value)
        if value != value.strip():
            raise PolicyValidationError(canonical, "value has leading or trailing whitespace", value)

        grammar = self._grammars.get(canonical)
        if grammar is not None:
            try:
                grammar(value)
            except PolicyValidationError as exc:
                # Grammar helpers only know the reason; attach the directive itself
                raise type(exc)(canonical, exc.reason, value) from None
        return Directive(name=canonical, value=value)

    @staticmethod
    def _fail(reason: str) -> None:
        raise PolicyValidationError("", reason)

    @staticmethod
    def _fail_csp(reason: str) -> None:
        raise CSPSyntaxError(d.CONTENT_SECURITY_POLICY, reason)

    def _check_content_security_policy(self, value: str) -> None:
        seen: List[str] = []
        for segment in value.split(";"):
            tokens = segment.split()
            if not tokens:
                continue  # empty segment, e.g. a trailing semicolon
            directive = tokens[0].lower()
            sources = tokens[1:]
            if not _CSP_DIRECTIVE_NAME.match(directive):
                self._fail_csp(f"malformed directive name '{tokens[0]}'")
            if directive not in d.CSP_DIRECTIVES:
                self._fail_csp(f"unknown directive '{directive}'")
            if directive in seen:
                self._fail_csp(f"directive '{directive}' is declared more than once")
            seen.append(directive)

            if directive in d.CSP_FETCH_DIRECTIVES:
                self._check_csp_source_list(directive, sources)
            elif directive in d.CSP_FLAG_DIRECTIVES:
                if sources:
                    self._fail_csp(f"'{directive}' does not take a value")
            elif directive == "sandbox":
                for token in sources:
                    if token.lower() not in d.CSP_SANDBOX_FLAGS:
                        self._fail_csp(f"unknown sandbox flag '{token}'")
            elif directive == "report-uri":
                if not sources:
                    self._fail_csp("'report-uri' requires at least one URI")
                for token in sources:
                    if not _CSP_REPORT_URI.match(token):
                        self._fail_csp(f"malformed report URI '{token}'")
            elif directive == "report-to":
                if len(sources) != 1 or not _CSP_REPORT_GROUP.match(sources[0]):
                    self._fail_csp("'report-to' requires exactly one group name")
            elif directive == "require-trusted-types-for":
                if sources != ["'script'"]:
                    self._fail_csp("'require-trusted-types-for' only accepts 'script'")
            elif directive == "trusted-types":
                for token in sources:
                    if token not in ("'none'", "'allow-duplicates'", "*") and not _CSP_TRUSTED_TYPE_POLICY.match(token):
                        self._fail_csp(f"malformed trusted-types policy name '{token}'")
        if not seen:
            self._fail_csp("policy contains no directives")

    def _check_csp_source_list(self, directive: str, sources: List[str]) -> None:
        if not sources:
            self._fail_csp(f"'{directive}' requires a source list")
        if "'none'" in (s.lower() for s in sources) and len(sources) > 1:
            self._fail_csp(f"'none' must be the only source in '{directive}'")
        for token in sources:
            lowered = token.lower()
            if lowered in d.CSP_KEYWORD_SOURCES:
                continue
            if _CSP_NONCE_SOURCE.match(token) or _CSP_HASH_SOURCE.match(token):
                continue
            if lowered in ("self", "none", "unsafe-inline", "unsafe-eval", "strict-dynamic"):
                self._fail_csp(f"keyword source '{token}' must be single-quoted in '{directive}'")
            if token.startswith("'"):
                self._fail_csp(f"unknown quoted source '{token}' in '{directive}'")
            if _CSP_SCHEME_SOURCE.match(token) or _CSP_HOST_SOURCE.match(token):
                continue
            self._fail_csp(f"malformed source '{token}' in '{directive}'")

    def _check_content_type_options(self, value: str) -> None:
        if value != "nosniff":
            self._fail("value must be exactly 'nosniff'")

    def _check_frame_options(self, value: str) -> None:
        keyword = value.strip().upper()
        if keyword in ("DENY", "SAMEORIGIN"):
            return
        match = _FRAME_ALLOW_FROM.match(value.strip())
        if match is None:
            self._fail("value must be DENY, SAMEORIGIN or ALLOW-FROM <origin>")
        if not _HTTP_ORIGIN.match(match.group(1)):
            self._fail(f"ALLOW-FROM origin '{match.group(1)}' is not an http(s) origin")

    def _check_strict_transport_security(self, value: str) -> None:
        max_age_seen = False
        flags_seen: List[str] = []
        for part in (p.strip() for p in value.split(";")):
            lowered = part.lower()
            if lowered.startswith("max-age"):
                match = _HSTS_MAX_AGE.match(part)
                if match is None:
                    self._fail(f"malformed max-age directive '{part}'")
                if max_age_seen:
                    self._fail("max-age is declared more than once")
                raw_age = match.group(2).strip()
                if raw_age.startswith("-"):
                    self._fail("max-age must be non-negative")
                if not re.fullmatch(r"[0-9]+", raw_age):
                    self._fail(f"max-age '{raw_age}' is not an integer")
                max_age_seen = True
            elif lowered in ("includesubdomains", "preload"):
                if lowered in flags_seen:
                    self._fail(f"'{part}' is declared more than once")
                flags_seen.append(lowered)
            else:
                self._fail(f"unexpected directive '{part}'")
        if not max_age_seen:
            self._fail("max-age is required")

    def _check_xss_protection(self, value: str) -> None:
        if not _XSS_PROTECTION.match(value.strip()):
            self._fail("value must be '0', '1' or '1; mode=block'")

    def _check_referrer_policy(self, value: str) -> None:
        if value == "":
            return  # explicitly "send no referrer policy hint"
        for token in (t.strip().lower() for t in value.split(",")):
            if not token or token not in d.REFERRER_POLICIES:
                self._fail(f"unknown referrer policy '{token}'")

    def _check_permissions_policy(self, value: str) -> None:
        seen: List[str] = []
        for entry in (e.strip() for e in value.split(",")):
            match = _PERMISSIONS_ENTRY.match(entry)
            if match is None:
                self._fail(f"malformed entry '{entry}' (expected feature=(allow-list))")
            feature, allow_list = match.group(1), match.group(2).strip()
            if feature not in d.PERMISSIONS_FEATURES:
                self._fail(f"unknown feature '{feature}'")
            if feature in seen:
                self._fail(f"feature '{feature}' is declared more than once")
            seen.append(feature)

            if allow_list in ("*", "self"):
                continue
            if not (allow_list.startswith("(") and allow_list.endswith(")")):
                self._fail(f"allow-list for '{feature}' must be parenthesized")
            for member in allow_list[1:-1].split():
                if member in ("self", "src", "*") or _PERMISSIONS_ORIGIN.match(member):
                    continue
                self._fail(f"invalid allow-list member '{member}' for '{feature}'")
