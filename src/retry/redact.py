"""Secret scrubbing for request logging.

The bearer token travels in the ``Authorization`` header for HTTP calls and
in the ``access_token`` query parameter for the SignalR negotiate request.
"""

import re
from collections.abc import Iterable


REDACTED_VALUE = "[REDACTED]"

SENSITIVE_HEADERS = frozenset(
    {
        "authorization",
        "proxy-authorization",
        "cookie",
        "set-cookie",
        "x-api-key",
        "x-auth-token",
    }
)

SENSITIVE_QUERY_PARAMS = ("access_token", "token", "api_key")

_USERINFO = re.compile(r"^(?P<scheme>[a-zA-Z][a-zA-Z0-9+.-]*://)[^/@?#]+@")
_QUERY_SECRET = re.compile(
    r"(?P<key>[?&](?:" + "|".join(SENSITIVE_QUERY_PARAMS) + r")=)[^&#]*",
    re.IGNORECASE,
)


def is_sensitive_header(header_name: str) -> bool:
    return header_name.lower() in SENSITIVE_HEADERS


def redact_headers(headers: Iterable[tuple[str, str]]) -> dict[str, str]:
    """Copy header pairs into a dict, masking sensitive values.

    Args:
        headers: Name/value pairs, e.g. ``request.headers.items()``.

    Returns:
        A new dict; the input is left untouched.
    """
    return {
        name: REDACTED_VALUE if is_sensitive_header(name) else value
        for name, value in headers
    }


def redact_url(url: str) -> str:
    """Mask userinfo and token query parameters in a URL.

    Args:
        url: Absolute URL as sent on the wire.

    Returns:
        The URL with ``user:pass@`` and secret query values replaced.
    """
    url = _USERINFO.sub(rf"\g<scheme>{REDACTED_VALUE}@", url)
    return _QUERY_SECRET.sub(rf"\g<key>{REDACTED_VALUE}", url)
