"""Helper utilities (identifiers, responses, request helpers)."""
import re
import secrets
from typing import Optional

from fastapi import Request

_OBJECT_ID_RE = re.compile(r"^[0-9a-fA-F]{24}$")

# Checked in this order; the first non-empty value wins
CLIENT_IP_HEADERS = ("x-forwarded-for", "x-real-ip", "cf-connecting-ip")


def generate_object_id() -> str:
    """Return a new 24-character hexadecimal identity reference."""
    return secrets.token_hex(12)


def is_valid_object_id(value: Optional[str]) -> bool:
    return isinstance(value, str) and bool(_OBJECT_ID_RE.match(value))


def normalize_object_id(value: Optional[str]) -> Optional[str]:
    """Return ``value`` if it is a well-formed identity reference, else None."""
    return value if is_valid_object_id(value) else None


def format_response(data=None, success=True):
    return {"success": success, "data": data}


def get_client_ip(request: Request) -> str:
    """Return the client's IP address from proxy headers.

    ``X-Forwarded-For`` may hold a comma-separated chain; its first hop is used.
    Returns 'unknown' if no header carries a value.
    """
    for header in CLIENT_IP_HEADERS:
        value = request.headers.get(header)
        if value:
            first = value.split(",")[0].strip()
            if first:
                return first
    return "unknown"


def get_user_agent(request: Request) -> str:
    return request.headers.get("user-agent", "")
