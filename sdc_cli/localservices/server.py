"""
HTTP surface of the CloudAPI double.

CloudAPIRouter maps CloudAPI requests onto a FakeCloudAPI. It is served two
ways: FakeTransport calls it in-process (no sockets), and FakeCloudAPIServer
exposes it over real HTTP for tests of the urllib transport.
"""

import json
import re
import threading
import urllib.parse
from collections.abc import Callable
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any

from loguru import logger

from sdc_cli.core.client import APIError, NotFoundError, ValidationError
from sdc_cli.core.request import (
    ACTION_DISABLE_FIREWALL,
    ACTION_ENABLE_FIREWALL,
    ACTION_REBOOT,
    ACTION_RENAME,
    ACTION_RESIZE,
    ACTION_START,
    ACTION_STOP,
    HTTP_ACCEPTED,
    HTTP_CREATED,
    HTTP_NO_CONTENT,
    HTTP_OK,
)
from sdc_cli.core.types import (
    APIModel,
    CreateFabricNetworkOpts,
    CreateMachineOpts,
    FabricVLAN,
)
from sdc_cli.localservices.cloudapi import FakeCloudAPI

Response = tuple[int, Any]
RouteHandler = Callable[..., Response]


def _dump(value: Any) -> Any:
    if isinstance(value, APIModel):
        return value.to_dict()
    if isinstance(value, list):
        return [_dump(v) for v in value]
    return value


def _error(status: int, code: str, message: str) -> Response:
    return status, {"code": code, "message": message}


def _vlan_id(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise NotFoundError(f"Fabric VLAN {value} not found")


def _compile(template: str) -> re.Pattern[str]:
    """Turn '/machines/{id}/tags/{tag}' into a regex under any account prefix."""
    pattern = re.sub(r"\{(\w+)\}", r"(?P<\1>[^/]+)", template)
    return re.compile(rf"^/[^/]+{pattern}/?$")


class CloudAPIRouter:
    """Maps (method, path, query, body) onto FakeCloudAPI operations."""

    def __init__(self, service: FakeCloudAPI):
        self.service = service
        routes: list[tuple[str, str, RouteHandler]] = [
            # Keys
            ("GET", "/keys", self._list_keys),
            ("POST", "/keys", self._create_key),
            ("GET", "/keys/{name}", self._get_key),
            ("DELETE", "/keys/{name}", self._delete_key),
            # Packages
            ("GET", "/packages", self._list_packages),
            ("GET", "/packages/{ref}", self._get_package),
            # Images
            ("GET", "/images", self._list_images),
            ("POST", "/images", self._create_image),
            ("GET", "/images/{id}", self._get_image),
            ("DELETE", "/images/{id}", self._delete_image),
            # Machines
            ("GET", "/machines", self._list_machines),
            ("POST", "/machines", self._create_machine),
            ("GET", "/machines/{id}", self._get_machine),
            ("POST", "/machines/{id}", self._machine_action),
            ("DELETE", "/machines/{id}", self._delete_machine),
            ("GET", "/machines/{id}/fwrules", self._list_machine_fwrules),
            ("GET", "/machines/{id}/metadata", self._get_metadata),
            ("POST", "/machines/{id}/metadata", self._update_metadata),
            ("DELETE", "/machines/{id}/metadata", self._delete_all_metadata),
            ("DELETE", "/machines/{id}/metadata/{key}", self._delete_metadata),
            ("GET", "/machines/{id}/tags", self._list_tags),
            ("POST", "/machines/{id}/tags", self._add_tags),
            ("PUT", "/machines/{id}/tags", self._replace_tags),
            ("DELETE", "/machines/{id}/tags", self._delete_tags),
            ("GET", "/machines/{id}/tags/{tag}", self._get_tag),
            ("DELETE", "/machines/{id}/tags/{tag}", self._delete_tag),
            ("GET", "/machines/{id}/snapshots", self._list_snapshots),
            ("POST", "/machines/{id}/snapshots", self._create_snapshot),
            ("GET", "/machines/{id}/snapshots/{name}", self._get_snapshot),
            ("POST", "/machines/{id}/snapshots/{name}", self._start_from_snapshot),
            ("DELETE", "/machines/{id}/snapshots/{name}", self._delete_snapshot),
            # Firewall rules
            ("GET", "/fwrules", self._list_fwrules),
            ("POST", "/fwrules", self._create_fwrule),
            ("GET", "/fwrules/{id}", self._get_fwrule),
            ("POST", "/fwrules/{id}", self._update_fwrule),
            ("DELETE", "/fwrules/{id}", self._delete_fwrule),
            ("POST", "/fwrules/{id}/enable", self._enable_fwrule),
            ("POST", "/fwrules/{id}/disable", self._disable_fwrule),
            ("GET", "/fwrules/{id}/machines", self._list_fwrule_machines),
            # Networks
            ("GET", "/networks", self._list_networks),
            ("GET", "/networks/{id}", self._get_network),
            # Fabrics
            ("GET", "/fabrics/default/vlans", self._list_vlans),
            ("POST", "/fabrics/default/vlans", self._create_vlan),
            ("GET", "/fabrics/default/vlans/{vlan}", self._get_vlan),
            ("PUT", "/fabrics/default/vlans/{vlan}", self._update_vlan),
            ("DELETE", "/fabrics/default/vlans/{vlan}", self._delete_vlan),
            ("GET", "/fabrics/default/vlans/{vlan}/networks", self._list_fabric_networks),
            ("POST", "/fabrics/default/vlans/{vlan}/networks", self._create_fabric_network),
            ("GET", "/fabrics/default/vlans/{vlan}/networks/{id}", self._get_fabric_network),
            ("DELETE", "/fabrics/default/vlans/{vlan}/networks/{id}", self._delete_fabric_network),
        ]
        self.routes = [(method, _compile(template), handler) for method, template, handler in routes]

    def handle(self, method: str, url: str, raw_body: bytes | None) -> tuple[int, bytes]:
        """Serve one raw HTTP request, returning status and JSON body bytes."""
        parts = urllib.parse.urlsplit(url)
        query = dict(urllib.parse.parse_qsl(parts.query, keep_blank_values=True))
        body = None
        if raw_body:
            try:
                body = json.loads(raw_body)
            except json.JSONDecodeError as e:
                status, payload = _error(400, "InvalidArgument", f"Invalid JSON body: {e}")
                return status, json.dumps(payload).encode("utf-8")

        status, payload = self.dispatch(method, parts.path, query, body)
        if payload is None or status == HTTP_NO_CONTENT:
            return status, b""
        return status, json.dumps(_dump(payload)).encode("utf-8")

    def dispatch(self, method: str, path: str, query: dict[str, str], body: Any) -> Response:
        """Route a decoded request to the matching operation."""
        path_matched = False
        for route_method, pattern, handler in self.routes:
            match = pattern.match(path)
            if not match:
                continue
            path_matched = True
            if route_method != method:
                continue
            params = {k: urllib.parse.unquote(v) for k, v in match.groupdict().items()}
            return self._call(handler, query, body, params)

        if path_matched:
            return _error(405, "BadMethod", f"{method} is not allowed on {path}")
        return _error(404, "ResourceNotFound", f"{path} does not exist")

    @staticmethod
    def _call(handler: RouteHandler, query: dict[str, str], body: Any, params: dict[str, str]) -> Response:
        try:
            return handler(query, body or {}, **params)
        except NotFoundError as e:
            return _error(404, "ResourceNotFound", e.message)
        except ValidationError as e:
            return _error(409, "InvalidArgument", e.message)
        except APIError as e:
            return _error(e.status or 500, "InternalError", e.message)
        except Exception as e:
            # hook-injected and unexpected failures become 500s at the HTTP boundary
            logger.warning("Fake CloudAPI operation failed: {!r}", e)
            return _error(500, "InternalError", str(e))

    # =========================================================================
    # Keys
    # =========================================================================

    def _list_keys(self, query: dict, body: dict) -> Response:
        return HTTP_OK, self.service.list_keys()

    def _create_key(self, query: dict, body: dict) -> Response:
        return HTTP_CREATED, self.service.create_key(body.get("name", ""), body.get("key", ""))

    def _get_key(self, query: dict, body: dict, name: str) -> Response:
        return HTTP_OK, self.service.get_key(name)

    def _delete_key(self, query: dict, body: dict, name: str) -> Response:
        self.service.delete_key(name)
        return HTTP_NO_CONTENT, None

    # =========================================================================
    # Packages & Images
    # =========================================================================

    def _list_packages(self, query: dict, body: dict) -> Response:
        return HTTP_OK, self.service.list_packages(query)

    def _get_package(self, query: dict, body: dict, ref: str) -> Response:
        return HTTP_OK, self.service.get_package(ref)

    def _list_images(self, query: dict, body: dict) -> Response:
        return HTTP_OK, self.service.list_images(query)

    def _create_image(self, query: dict, body: dict) -> Response:
        image = self.service.create_image_from_machine(
            body.get("machine", ""),
            body.get("name", ""),
            body.get("version", ""),
            description=body.get("description", ""),
            tags=body.get("tags"),
        )
        return HTTP_CREATED, image

    def _get_image(self, query: dict, body: dict, id: str) -> Response:
        return HTTP_OK, self.service.get_image(id)

    def _delete_image(self, query: dict, body: dict, id: str) -> Response:
        self.service.delete_image(id)
        return HTTP_NO_CONTENT, None

    # =========================================================================
    # Machines
    # =========================================================================

    def _list_machines(self, query: dict, body: dict) -> Response:
        return HTTP_OK, self.service.list_machines(query)

    def _create_machine(self, query: dict, body: dict) -> Response:
        opts = CreateMachineOpts.from_dict(body)
        machine = self.service.create_machine(
            name=opts.name,
            package=opts.package,
            image=opts.image,
            networks=opts.networks,
            metadata=opts.metadata,
            tags=opts.tags,
            firewall_enabled=opts.firewall_enabled,
        )
        return HTTP_CREATED, machine

    def _get_machine(self, query: dict, body: dict, id: str) -> Response:
        return HTTP_OK, self.service.get_machine(id)

    def _machine_action(self, query: dict, body: dict, id: str) -> Response:
        params = {**body, **query}
        action = params.get("action", "")
        if action == ACTION_STOP:
            self.service.stop_machine(id)
        elif action == ACTION_START:
            self.service.start_machine(id)
        elif action == ACTION_REBOOT:
            self.service.reboot_machine(id)
        elif action == ACTION_RESIZE:
            self.service.resize_machine(id, params.get("package", ""))
        elif action == ACTION_RENAME:
            self.service.rename_machine(id, params.get("name", ""))
        elif action == ACTION_ENABLE_FIREWALL:
            self.service.enable_firewall_machine(id)
        elif action == ACTION_DISABLE_FIREWALL:
            self.service.disable_firewall_machine(id)
        else:
            raise ValidationError(f"Unsupported machine action: {action!r}")
        return HTTP_ACCEPTED, None

    def _delete_machine(self, query: dict, body: dict, id: str) -> Response:
        self.service.delete_machine(id)
        return HTTP_NO_CONTENT, None

    def _list_machine_fwrules(self, query: dict, body: dict, id: str) -> Response:
        return HTTP_OK, self.service.list_machine_firewall_rules(id)

    def _get_metadata(self, query: dict, body: dict, id: str) -> Response:
        return HTTP_OK, self.service.get_machine_metadata(id)

    def _update_metadata(self, query: dict, body: dict, id: str) -> Response:
        return HTTP_OK, self.service.update_machine_metadata(id, body)

    def _delete_all_metadata(self, query: dict, body: dict, id: str) -> Response:
        self.service.delete_all_machine_metadata(id)
        return HTTP_NO_CONTENT, None

    def _delete_metadata(self, query: dict, body: dict, id: str, key: str) -> Response:
        self.service.delete_machine_metadata(id, key)
        return HTTP_NO_CONTENT, None

    def _list_tags(self, query: dict, body: dict, id: str) -> Response:
        return HTTP_OK, self.service.list_machine_tags(id)

    def _add_tags(self, query: dict, body: dict, id: str) -> Response:
        return HTTP_OK, self.service.add_machine_tags(id, body)

    def _replace_tags(self, query: dict, body: dict, id: str) -> Response:
        return HTTP_OK, self.service.replace_machine_tags(id, body)

    def _delete_tags(self, query: dict, body: dict, id: str) -> Response:
        self.service.delete_machine_tags(id)
        return HTTP_NO_CONTENT, None

    def _get_tag(self, query: dict, body: dict, id: str, tag: str) -> Response:
        return HTTP_OK, self.service.get_machine_tag(id, tag)

    def _delete_tag(self, query: dict, body: dict, id: str, tag: str) -> Response:
        self.service.delete_machine_tag(id, tag)
        return HTTP_NO_CONTENT, None

    def _list_snapshots(self, query: dict, body: dict, id: str) -> Response:
        return HTTP_OK, self.service.list_machine_snapshots(id)

    def _create_snapshot(self, query: dict, body: dict, id: str) -> Response:
        return HTTP_CREATED, self.service.create_machine_snapshot(id, body.get("name", ""))

    def _get_snapshot(self, query: dict, body: dict, id: str, name: str) -> Response:
        return HTTP_OK, self.service.get_machine_snapshot(id, name)

    def _start_from_snapshot(self, query: dict, body: dict, id: str, name: str) -> Response:
        self.service.start_machine_from_snapshot(id, name)
        return HTTP_ACCEPTED, None

    def _delete_snapshot(self, query: dict, body: dict, id: str, name: str) -> Response:
        self.service.delete_machine_snapshot(id, name)
        return HTTP_NO_CONTENT, None

    # =========================================================================
    # Firewall rules
    # =========================================================================

    def _list_fwrules(self, query: dict, body: dict) -> Response:
        return HTTP_OK, self.service.list_firewall_rules()

    def _create_fwrule(self, query: dict, body: dict) -> Response:
        return HTTP_CREATED, self.service.create_firewall_rule(body.get("rule", ""), bool(body.get("enabled", False)))

    def _get_fwrule(self, query: dict, body: dict, id: str) -> Response:
        return HTTP_OK, self.service.get_firewall_rule(id)

    def _update_fwrule(self, query: dict, body: dict, id: str) -> Response:
        rule = self.service.update_firewall_rule(id, body.get("rule", ""), bool(body.get("enabled", False)))
        return HTTP_OK, rule

    def _delete_fwrule(self, query: dict, body: dict, id: str) -> Response:
        self.service.delete_firewall_rule(id)
        return HTTP_NO_CONTENT, None

    def _enable_fwrule(self, query: dict, body: dict, id: str) -> Response:
        return HTTP_OK, self.service.enable_firewall_rule(id)

    def _disable_fwrule(self, query: dict, body: dict, id: str) -> Response:
        return HTTP_OK, self.service.disable_firewall_rule(id)

    def _list_fwrule_machines(self, query: dict, body: dict, id: str) -> Response:
        return HTTP_OK, self.service.list_firewall_rule_machines(id)

    # =========================================================================
    # Networks & Fabrics
    # =========================================================================

    def _list_networks(self, query: dict, body: dict) -> Response:
        return HTTP_OK, self.service.list_networks()

    def _get_network(self, query: dict, body: dict, id: str) -> Response:
        return HTTP_OK, self.service.get_network(id)

    def _list_vlans(self, query: dict, body: dict) -> Response:
        return HTTP_OK, self.service.list_fabric_vlans()

    def _create_vlan(self, query: dict, body: dict) -> Response:
        return HTTP_CREATED, self.service.create_fabric_vlan(FabricVLAN.from_dict(body))

    def _get_vlan(self, query: dict, body: dict, vlan: str) -> Response:
        return HTTP_OK, self.service.get_fabric_vlan(_vlan_id(vlan))

    def _update_vlan(self, query: dict, body: dict, vlan: str) -> Response:
        update = FabricVLAN.from_dict({**body, "vlan_id": _vlan_id(vlan)})
        return HTTP_ACCEPTED, self.service.update_fabric_vlan(update)

    def _delete_vlan(self, query: dict, body: dict, vlan: str) -> Response:
        self.service.delete_fabric_vlan(_vlan_id(vlan))
        return HTTP_NO_CONTENT, None

    def _list_fabric_networks(self, query: dict, body: dict, vlan: str) -> Response:
        return HTTP_OK, self.service.list_fabric_networks(_vlan_id(vlan))

    def _create_fabric_network(self, query: dict, body: dict, vlan: str) -> Response:
        opts = CreateFabricNetworkOpts.from_dict(body)
        return HTTP_CREATED, self.service.create_fabric_network(_vlan_id(vlan), opts)

    def _get_fabric_network(self, query: dict, body: dict, vlan: str, id: str) -> Response:
        return HTTP_OK, self.service.get_fabric_network(_vlan_id(vlan), id)

    def _delete_fabric_network(self, query: dict, body: dict, vlan: str, id: str) -> Response:
        self.service.delete_fabric_network(_vlan_id(vlan), id)
        return HTTP_NO_CONTENT, None


# =============================================================================
# Transports
# =============================================================================


class FakeTransport:
    """
    In-process transport that serves requests from a FakeCloudAPI.

    Every request is recorded as ``(method, url, headers)`` in ``requests``.
    """

    def __init__(self, service: FakeCloudAPI | None = None):
        self.service = service or FakeCloudAPI()
        self.router = CloudAPIRouter(self.service)
        self.requests: list[tuple[str, str, dict[str, str]]] = []

    def send(self, method: str, url: str, body: bytes | None, headers: dict[str, str]) -> tuple[int, bytes]:
        self.requests.append((method, url, dict(headers)))
        return self.router.handle(method, url, body)


class FakeCloudAPIRequestHandler(BaseHTTPRequestHandler):
    server: "FakeCloudAPIServer"

    def _handle(self) -> None:
        length = int(self.headers.get("Content-Length") or 0)
        raw = self.rfile.read(length) if length else None
        status, data = self.server.router.handle(self.command, self.path, raw)

        self.send_response(status)
        if data:
            self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(data)))
        self.end_headers()
        if data:
            self.wfile.write(data)

    do_GET = _handle
    do_POST = _handle
    do_PUT = _handle
    do_DELETE = _handle

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("fake cloudapi: {}", format % args)


class FakeCloudAPIServer(ThreadingHTTPServer):
    """
    FakeCloudAPI served over HTTP on a background thread.

    Example:
        with FakeCloudAPIServer() as server:
            client = CloudAPIClient(base_url=server.url)
            client.packages.list()

    """

    daemon_threads = True

    def __init__(self, service: FakeCloudAPI | None = None, host: str = "127.0.0.1", port: int = 0):
        super().__init__((host, port), FakeCloudAPIRequestHandler)
        self.service = service or FakeCloudAPI()
        self.router = CloudAPIRouter(self.service)
        self._thread: threading.Thread | None = None

    @property
    def url(self) -> str:
        host, port = self.server_address[:2]
        return f"http://{host}:{port}"

    def start(self) -> "FakeCloudAPIServer":
        self._thread = threading.Thread(target=self.serve_forever, daemon=True)
        self._thread.start()
        logger.info("Fake CloudAPI listening on {}", self.url)
        return self

    def stop(self) -> None:
        if self._thread is not None:
            self.shutdown()
            self._thread.join(timeout=5)
            self._thread = None
        self.server_close()

    def __enter__(self) -> "FakeCloudAPIServer":
        return self.start()

    def __exit__(self, *exc_info: Any) -> None:
        self.stop()
