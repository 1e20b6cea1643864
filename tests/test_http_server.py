"""
Tests for the fake CloudAPI over real HTTP.

These run the urllib transport against FakeCloudAPIServer on an ephemeral
port.
"""

import http.client
import urllib.request

import pytest

from sdc_cli.core.auth import Credentials
from sdc_cli.core.client import APIError, HTTPTransport, NotFoundError
from sdc_cli.core.filter import Filter
from sdc_cli.core.types import CreateKeyOpts, CreateMachineOpts
from sdc_cli.sdk import CloudAPIClient

SMARTOS_IMAGE = "12345678-a1a1-b2b2-c3c3-098765432100"


def test_server_url(server):
    assert server.url.startswith("http://127.0.0.1:")


def test_list_packages(http_client):
    f = Filter()
    f.set("memory", 1024)
    assert [p.name for p in http_client.packages.list(f)] == ["Small"]


def test_machine_lifecycle(http_client):
    machine = http_client.machines.create(
        CreateMachineOpts(package="Small", image=SMARTOS_IMAGE, tags={"role": "web"})
    )
    assert machine.state == "running"

    http_client.machines.stop(machine.id)
    assert http_client.machines.get(machine.id).state == "stopped"
    http_client.machines.delete(machine.id)
    assert http_client.machines.list() == []


def test_not_found(http_client):
    with pytest.raises(NotFoundError) as excinfo:
        http_client.keys.get("missing")
    assert excinfo.value.status == 404


def test_conflict(http_client):
    http_client.keys.create(CreateKeyOpts(name="fake-key", key="ssh-rsa AAAA one"))
    with pytest.raises(APIError) as excinfo:
        http_client.keys.create(CreateKeyOpts(name="other", key="ssh-rsa AAAA one"))
    assert excinfo.value.status == 409


def test_unknown_path(http_client):
    with pytest.raises(NotFoundError):
        http_client._client.get("/my/nothing-here")


def test_method_not_allowed(http_client):
    with pytest.raises(APIError) as excinfo:
        http_client._client.put("/my/keys", {})
    assert excinfo.value.status == 405


def test_invalid_json_body(server):
    status, body = HTTPTransport(timeout=5).send(
        "POST", f"{server.url}/my/keys", b"{not json", {"Content-Type": "application/json"}
    )
    assert status == 400
    assert b"InvalidArgument" in body


def test_injected_error(http_client, fake):
    fake.register_control_point("list_images", lambda service, operation, args: RuntimeError("disk on fire"))

    with pytest.raises(APIError) as excinfo:
        http_client.images.list()

    assert excinfo.value.status == 500
    assert "disk on fire" in excinfo.value.message


def test_connection_error():
    with pytest.raises(APIError, match="Connection error"):
        HTTPTransport(timeout=2).send("GET", "http://127.0.0.1:1/my/keys", None, {})


@pytest.mark.parametrize(
    "failure",
    [ConnectionResetError(104, "Connection reset by peer"), http.client.RemoteDisconnected("closed")],
    ids=["reset", "remote-disconnected"],
)
def test_dropped_connection_names_the_operation(monkeypatch, failure):
    def urlopen(*args, **kwargs):
        raise failure

    monkeypatch.setattr(urllib.request, "urlopen", urlopen)
    client = CloudAPIClient(base_url="http://127.0.0.1:1", credentials=Credentials(), timeout=2)

    with pytest.raises(APIError, match="failed to get list of keys: Connection error") as excinfo:
        client.keys.list()

    assert excinfo.value.__cause__.__cause__ is failure
