"""
Request building for the CloudAPI.

Turns path segments, a query filter and an optional body into the pieces the
APIClient sends.
"""

import urllib.parse
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

# Resource paths
API_ROOT = "/my"
API_KEYS = "keys"
API_PACKAGES = "packages"
API_IMAGES = "images"
API_MACHINES = "machines"
API_METADATA = "metadata"
API_TAGS = "tags"
API_SNAPSHOTS = "snapshots"
API_FIREWALL_RULES = "fwrules"
API_FIREWALL_RULES_ENABLE = "enable"
API_FIREWALL_RULES_DISABLE = "disable"
API_NETWORKS = "networks"
API_FABRIC_VLANS = "fabrics/default/vlans"
API_FABRIC_NETWORKS = "networks"

# Machine actions
ACTION_START = "start"
ACTION_STOP = "stop"
ACTION_REBOOT = "reboot"
ACTION_RESIZE = "resize"
ACTION_RENAME = "rename"
ACTION_ENABLE_FIREWALL = "enable_firewall"
ACTION_DISABLE_FIREWALL = "disable_firewall"

# Expected statuses
HTTP_OK = 200
HTTP_CREATED = 201
HTTP_ACCEPTED = 202
HTTP_NO_CONTENT = 204


def make_path(*segments: Any) -> str:
    """
    Join path segments under the account root, escaping each one.

    Resource family constants such as ``fabrics/default/vlans`` are trusted
    and keep their slashes; every other segment is percent-escaped.

    Raises:
        ValueError: If any segment is empty

    """
    parts = [API_ROOT]
    for segment in segments:
        text = str(segment)
        if not text:
            raise ValueError(f"empty path segment in {segments!r}")
        if text == API_FABRIC_VLANS:
            parts.append(text)
        else:
            parts.append(urllib.parse.quote(text, safe=""))
    return "/".join(parts)


def encode_query(params: Mapping[str, Any] | None) -> str:
    """Encode query parameters in insertion order, percent-encoding each value and dropping None."""
    if not params:
        return ""
    filtered_params = {k: v for k, v in params.items() if v is not None}
    return urllib.parse.urlencode(filtered_params, quote_via=urllib.parse.quote, safe=".")


@dataclass
class Request:
    """A single CloudAPI call."""

    method: str
    path: str
    query: Mapping[str, Any] | None = None
    body: Any = None
    expected_status: int = HTTP_OK

    @property
    def url(self) -> str:
        """Path plus encoded query string."""
        query_string = encode_query(self.query)
        if not query_string:
            return self.path
        return f"{self.path}?{query_string}"
