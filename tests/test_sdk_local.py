"""
Tests for CloudAPIClient against the in-memory CloudAPI.

Requests go through the full client stack (request building, headers, status
checks, JSON decoding) and are served in-process by FakeTransport.
"""

import ipaddress

import pytest

from sdc_cli.core.client import APIError, NotFoundError, ValidationError
from sdc_cli.core.filter import Filter
from sdc_cli.core.types import (
    CreateFabricNetworkOpts,
    CreateFwRuleOpts,
    CreateImageFromMachineOpts,
    CreateKeyOpts,
    CreateMachineOpts,
    FabricVLAN,
    Network,
)

SMARTOS_IMAGE = "12345678-a1a1-b2b2-c3c3-098765432100"
SMALL_PACKAGE_ID = "11223344-1212-abab-3434-aabbccddeeff"
PUBLIC_NETWORK = "123abc4d-0011-aabb-2233-ccdd4455"


@pytest.fixture
def machine(client):
    return client.machines.create(CreateMachineOpts(name="test", package="Small", image=SMARTOS_IMAGE))


# =============================================================================
# Requests
# =============================================================================


class TestRequests:
    def test_headers(self, client, transport):
        client.packages.list()

        method, url, headers = transport.requests[-1]
        assert method == "GET"
        assert url == "http://localhost:8080/my/packages"
        assert headers["Accept"] == "application/json"
        assert headers["Api-Version"] == "~7.0"
        assert headers["Date"].endswith("GMT")
        assert "Content-Type" not in headers
        assert "Authorization" not in headers

    def test_body_sets_content_type(self, client, transport):
        client.keys.create(CreateKeyOpts(name="fake-key", key="ssh-rsa AAAA one"))

        method, url, headers = transport.requests[-1]
        assert method == "POST"
        assert headers["Content-Type"] == "application/json"

    def test_filter_becomes_query(self, client, transport):
        f = Filter()
        f.set("memory", 1024)
        f.set("state", "running")
        client.machines.list(f)

        assert transport.requests[-1][1] == "http://localhost:8080/my/machines?memory=1024&state=running"

    def test_path_segments_are_escaped(self, client, transport):
        client.keys.create(CreateKeyOpts(name="team/ops key", key="ssh-rsa AAAA one"))

        key = client.keys.get("team/ops key")

        assert key.name == "team/ops key"
        assert transport.requests[-1][1] == "http://localhost:8080/my/keys/team%2Fops%20key"

    def test_actions_use_query(self, client, transport, machine):
        client.machines.resize(machine.id, "Medium")
        assert transport.requests[-1][1].endswith(f"/my/machines/{machine.id}?action=resize&package=Medium")


# =============================================================================
# Errors
# =============================================================================


class TestErrors:
    def test_not_found_names_the_operation(self, client):
        with pytest.raises(NotFoundError) as excinfo:
            client.keys.get("fake-key")

        err = excinfo.value
        assert err.status == 404
        assert err.message.startswith("failed to get key with name: fake-key: ")
        assert isinstance(err.__cause__, NotFoundError)
        assert err.details["code"] == "ResourceNotFound"

    def test_validation_failure_is_api_error(self, client):
        client.keys.create(CreateKeyOpts(name="fake-key", key="ssh-rsa AAAA one"))

        with pytest.raises(APIError) as excinfo:
            client.keys.create(CreateKeyOpts(name="fake-key", key="ssh-rsa AAAA two"))

        assert excinfo.value.status == 409
        assert "failed to create key with name fake-key" in excinfo.value.message

    def test_hook_error_surfaces_as_server_error(self, client, fake):
        fake.set_hook(lambda service, operation, args: RuntimeError("backend down"))

        with pytest.raises(APIError) as excinfo:
            client.networks.list()

        assert excinfo.value.status == 500
        assert "backend down" in excinfo.value.message

    def test_to_dict(self, client):
        with pytest.raises(NotFoundError) as excinfo:
            client.networks.get("missing")

        data = excinfo.value.to_dict()
        assert data["status"] == 404
        assert data["error"].startswith("failed to get network with id missing")


# =============================================================================
# Keys, Packages & Images
# =============================================================================


class TestKeys:
    def test_create_get_list_delete(self, client):
        created = client.keys.create(CreateKeyOpts(name="fake-key", key="ssh-rsa AAAA one"))

        assert client.keys.get("fake-key") == created
        assert client.keys.list() == [created]
        assert client.keys.delete("fake-key") is True
        assert client.keys.list() == []


class TestPackagesAndImages:
    def test_list_packages_by_memory(self, client):
        f = Filter()
        f.set("memory", 1024)

        packages = client.packages.list(f)

        assert [p.name for p in packages] == ["Small"]
        small = packages[0]
        assert (small.id, small.disk, small.swap, small.vcpus, small.version) == (
            SMALL_PACKAGE_ID,
            16384,
            2048,
            1,
            "1.0.2",
        )

    def test_get_package_by_name_or_id(self, client):
        assert client.packages.get("Small") == client.packages.get(SMALL_PACKAGE_ID)

    def test_list_images_public_filter(self, client):
        f = Filter()
        f.set("public", True)
        f.set("os", "smartos")

        images = client.images.list(f)

        assert len(images) == 2
        assert all(i.public is True for i in images)

    def test_image_from_machine(self, client, machine):
        image = client.images.create_from_machine(
            CreateImageFromMachineOpts(machine=machine.id, name="custom", version="1.0.0")
        )

        assert client.images.get(image.id).name == "custom"
        assert client.images.delete(image.id) is True
        with pytest.raises(NotFoundError):
            client.images.get(image.id)


# =============================================================================
# Machines
# =============================================================================


class TestMachines:
    def test_create(self, client):
        machine = client.machines.create(
            CreateMachineOpts(
                name="db",
                package="Small",
                image=SMARTOS_IMAGE,
                networks=[PUBLIC_NETWORK],
                metadata={"user-script": "echo hello"},
                tags={"role": "db"},
            )
        )

        assert machine.name == "db"
        assert (machine.memory, machine.disk, machine.state) == (1024, 16384, "running")
        assert ipaddress.ip_address(machine.primary_ip) in ipaddress.ip_network("32.151.0.0/16")
        assert machine.primary_ip == machine.ips[0]
        assert machine.metadata == {"user-script": "echo hello"}
        assert machine.tags == {"role": "db"}
        assert machine.networks == [PUBLIC_NETWORK]
        assert client.machines.get(machine.id) == machine

    def test_stop_then_delete(self, client, machine):
        with pytest.raises(APIError, match="machine is not stopped"):
            client.machines.delete(machine.id)

        assert client.machines.stop(machine.id) is True
        assert client.machines.get(machine.id).state == "stopped"
        assert client.machines.delete(machine.id) is True
        assert client.machines.list() == []

    def test_list_and_count_with_filters(self, client, machine):
        client.machines.create(CreateMachineOpts(package="Medium", image=SMARTOS_IMAGE, tags={"role": "db"}))

        f = Filter({"memory": 1024, "state": "running"})
        assert [m.id for m in client.machines.list(f)] == [machine.id]
        assert client.machines.count() == 2
        assert client.machines.count(Filter({"tags.role": "db"})) == 1

    def test_start_reboot_rename_resize(self, client, machine):
        client.machines.stop(machine.id)
        client.machines.start(machine.id)
        client.machines.reboot(machine.id)
        client.machines.rename(machine.id, "renamed")
        client.machines.resize(machine.id, "Large")

        updated = client.machines.get(machine.id)
        assert (updated.state, updated.name, updated.memory) == ("running", "renamed", 4096)

    def test_wait_for_state(self, client, machine):
        client.machines.stop(machine.id)
        assert client.machines.wait_for_state(machine.id, "stopped", poll_interval=0).state == "stopped"

    def test_wait_for_state_times_out(self, client, machine):
        with pytest.raises(APIError, match="Timeout waiting"):
            client.machines.wait_for_state(machine.id, "stopped", poll_interval=0, timeout=-1)

    def test_metadata(self, client, machine):
        assert client.machines.metadata.update(machine.id, {"a": "1", "b": "2"}) == {"a": "1", "b": "2"}
        client.machines.metadata.delete(machine.id, "a")
        assert client.machines.metadata.get(machine.id) == {"b": "2"}
        client.machines.metadata.delete_all(machine.id)
        assert client.machines.metadata.get(machine.id) == {}

    def test_tags(self, client, machine):
        client.machines.tags.add(machine.id, {"role": "db"})
        assert client.machines.tags.get(machine.id, "role") == "db"
        assert client.machines.tags.replace(machine.id, {"env": "prod"}) == {"env": "prod"}
        client.machines.tags.delete(machine.id, "env")
        assert client.machines.tags.list(machine.id) == {}
        client.machines.tags.add(machine.id, {"a": "b"})
        client.machines.tags.delete_all(machine.id)
        assert client.machines.tags.list(machine.id) == {}

    def test_snapshots(self, client, machine):
        snapshot = client.machines.snapshots.create(machine.id, "snap1")
        assert client.machines.snapshots.get(machine.id, "snap1") == snapshot
        assert [s.name for s in client.machines.snapshots.list(machine.id)] == ["snap1"]

        client.machines.stop(machine.id)
        assert client.machines.snapshots.start(machine.id, "snap1") is True
        assert client.machines.get(machine.id).state == "running"

        client.machines.snapshots.delete(machine.id, "snap1")
        assert client.machines.snapshots.list(machine.id) == []

    def test_machine_firewall(self, client, machine):
        rule = client.firewall_rules.create(
            CreateFwRuleOpts(enabled=True, rule=f"FROM any TO vm {machine.id} ALLOW tcp PORT 22")
        )

        client.machines.firewall.enable(machine.id)
        assert client.machines.get(machine.id).firewall_enabled is True
        assert client.machines.firewall.list_rules(machine.id) == [rule]
        client.machines.firewall.disable(machine.id)
        assert client.machines.get(machine.id).firewall_enabled is False


# =============================================================================
# Firewall Rules
# =============================================================================


class TestFirewallRules:
    def test_lifecycle(self, client, machine):
        rule = client.firewall_rules.create(
            CreateFwRuleOpts(enabled=False, rule=f"FROM any TO vm {machine.id} ALLOW tcp PORT 80")
        )
        assert client.firewall_rules.get(rule.id) == rule
        assert client.firewall_rules.list() == [rule]

        assert client.firewall_rules.enable(rule.id).enabled is True
        assert client.firewall_rules.get(rule.id).enabled is True
        assert client.firewall_rules.disable(rule.id).enabled is False
        assert client.firewall_rules.get(rule.id).enabled is False

        assert [m.id for m in client.firewall_rules.list_machines(rule.id)] == [machine.id]

        updated = client.firewall_rules.update(
            rule.id, CreateFwRuleOpts(enabled=True, rule="FROM any TO all vms ALLOW tcp PORT 443")
        )
        assert updated.rule == "FROM any TO all vms ALLOW tcp PORT 443"
        assert client.firewall_rules.list_machines(rule.id) == []

        client.firewall_rules.delete(rule.id)
        with pytest.raises(NotFoundError):
            client.firewall_rules.get(rule.id)


# =============================================================================
# Networks & Fabrics
# =============================================================================


class TestNetworks:
    def test_list_and_get(self, client):
        assert [n.name for n in client.networks.list()] == ["Test-Joyent-Public", "Test-Joyent-Private"]
        assert client.networks.get(PUBLIC_NETWORK) == Network(
            id=PUBLIC_NETWORK, name="Test-Joyent-Public", public=True
        )

    def test_get_unknown(self, client):
        with pytest.raises(NotFoundError):
            client.networks.get("unknown")


class TestFabrics:
    def test_vlan_lifecycle(self, client):
        vlan = client.fabrics.create_vlan(FabricVLAN(id=5, name="backend"))
        assert client.fabrics.get_vlan(5) == vlan

        updated = client.fabrics.update_vlan(FabricVLAN(id=5, name="backend", description="db traffic"))
        assert updated.description == "db traffic"
        assert [v.id for v in client.fabrics.list_vlans()] == [2, 5]

        client.fabrics.delete_vlan(5)
        with pytest.raises(NotFoundError):
            client.fabrics.get_vlan(5)

    @pytest.mark.parametrize("vlan_id", [-1, 4096])
    def test_vlan_id_checked_before_request(self, client, transport, vlan_id):
        with pytest.raises(ValidationError):
            client.fabrics.get_vlan(vlan_id)
        assert transport.requests == []

    def test_fabric_networks(self, client):
        opts = CreateFabricNetworkOpts(
            name="internal",
            subnet="192.168.1.0/24",
            provision_start_ip="192.168.1.10",
            provision_end_ip="192.168.1.200",
            resolvers=["8.8.8.8"],
        )
        network = client.fabrics.create_network(2, opts)

        assert network.fabric is True
        assert network.vlan_id == 2
        assert network.subnet == "192.168.1.0/24"
        assert client.fabrics.get_network(2, network.id) == network
        assert client.fabrics.list_networks(2) == [network]

        with pytest.raises(APIError) as excinfo:
            client.fabrics.delete_vlan(2)
        assert excinfo.value.status == 409

        client.fabrics.delete_network(2, network.id)
        assert client.fabrics.list_networks(2) == []
