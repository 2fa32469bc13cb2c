"""
Safety Guardrails for Cowrite.

Enforces:
- Outbound URL allow-list for user-configured HTTP tools (SSRF guard)
- Tool output size caps

Every user-configured tool URL is validated here before the tool is
registered for a turn.
"""

import ipaddress
from typing import Optional
from urllib.parse import urlsplit
import logging

logger = logging.getLogger(__name__)


# ============================================================================
# CONSTANTS
# ============================================================================

LOOPBACK_HOSTS = ("localhost", "127.0.0.1", "::1")

# Tool output size limits (characters)
TOOL_OUTPUT_MAX_CHARS = 20_000
GENERAL_OUTPUT_MAX_CHARS = 50_000


# ============================================================================
# URL ALLOW-LIST
# ============================================================================

class UrlNotAllowedError(Exception):
    """Raised when an outbound URL targets a blocked host."""
    pass


def _hostname(url: str) -> Optional[str]:
    """Lowercased hostname, or None if the URL has no usable host."""
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return None
    if parts.scheme not in ("http", "https"):
        return None
    host = parts.hostname
    return host.lower() if host else None


def _is_private_host(host: str) -> bool:
    """True for loopback names, *.local, and private / loopback / link-local IPs."""
    if host in LOOPBACK_HOSTS or host.endswith(".local"):
        return True
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return False
    return address.is_private or address.is_loopback or address.is_link_local


def validate_url(url: str, app_base_url: str = "", dev_mode: bool = False) -> str:
    """
    Validate an outbound URL against the allow-list.

    Rules, in order:
    1. The host of `app_base_url` is always allowed (same-origin tools).
    2. In dev mode, loopback hosts are allowed.
    3. localhost, loopback, *.local, private and link-local addresses are blocked.
    4. Anything else with an http(s) scheme is allowed.

    Args:
        url: Target URL.
        app_base_url: Deployment origin (may be empty).
        dev_mode: Allow loopback targets.

    Returns:
        The URL unchanged if allowed.

    Raises:
        UrlNotAllowedError: If the URL is unparsable or targets a blocked host.

    Example:
        >>> validate_url("https://api.example.com/v1")
        'https://api.example.com/v1'

        >>> validate_url("http://192.168.1.10/admin")
        UrlNotAllowedError: URL host not allowed: 192.168.1.10
    """
    host = _hostname(url)
    if host is None:
        raise UrlNotAllowedError(f"Invalid URL: {url}")

    if app_base_url:
        app_host = _hostname(app_base_url)
        if app_host and host == app_host:
            return url

    if dev_mode and host in LOOPBACK_HOSTS:
        return url

    if _is_private_host(host):
        raise UrlNotAllowedError(f"URL host not allowed: {host}")

    return url


def is_url_allowed(url: str, app_base_url: str = "", dev_mode: bool = False) -> bool:
    """
    Check a URL against the allow-list without raising.

    Returns:
        True if the URL may be fetched, False otherwise.
    """
    try:
        validate_url(url, app_base_url=app_base_url, dev_mode=dev_mode)
        return True
    except UrlNotAllowedError as e:
        logger.debug(f"URL rejected: {e}")
        return False


# ============================================================================
# TOOL OUTPUT SIZE CAPS
# ============================================================================

def truncate_output(
    output: str,
    max_chars: int = GENERAL_OUTPUT_MAX_CHARS,
    truncation_message: Optional[str] = None
) -> str:
    """
    Truncate output to maximum character limit with clear indicator.

    Args:
        output: Output string to truncate.
        max_chars: Maximum characters allowed.
        truncation_message: Custom truncation message (optional).

    Returns:
        Truncated output with indicator if needed.
    """
    if len(output) <= max_chars:
        return output

    if truncation_message is None:
        truncation_message = f"[output truncated: {len(output)} chars → {max_chars} chars]"

    truncated = output[:max(0, max_chars - len(truncation_message) - 4)]
    return f"{truncated}... {truncation_message}"


def truncate_tool_output(output: str) -> str:
    """Cap a serialized tool result before it goes back to the model."""
    return truncate_output(
        output,
        max_chars=TOOL_OUTPUT_MAX_CHARS,
        truncation_message="[tool output truncated]"
    )


__all__ = [
    "UrlNotAllowedError",
    "validate_url",
    "is_url_allowed",
    "truncate_output",
    "truncate_tool_output",
    "TOOL_OUTPUT_MAX_CHARS",
    "GENERAL_OUTPUT_MAX_CHARS",
]
