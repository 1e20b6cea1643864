"""Tests for resource records and machine state transitions."""

import pytest

from sdc_cli.core.client import InvalidStateError
from sdc_cli.core.types import (
    CreateFwRuleOpts,
    CreateMachineOpts,
    FabricVLAN,
    FirewallRule,
    Image,
    Machine,
    MachineState,
    Network,
    can_transition,
    check_transition,
    valid_vlan_id,
)


def test_from_dict_ignores_unknown_and_null_keys():
    machine = Machine.from_dict({"id": "abc", "primaryIp": "32.151.0.1", "brand": "joyent", "name": None})
    assert machine.id == "abc"
    assert machine.primary_ip == "32.151.0.1"
    assert machine.name == ""


def test_machine_to_dict_uses_wire_names():
    data = Machine(id="abc", primary_ip="32.151.0.1").to_dict()
    assert data["primaryIp"] == "32.151.0.1"
    assert "primary_ip" not in data


def test_image_public_accepts_strings():
    assert Image.from_dict({"id": "x", "public": "true"}).public is True
    assert Image.from_dict({"id": "x", "public": "false"}).public is False
    assert Image.from_dict({"id": "x", "public": True}).public is True


def test_firewall_rule_global_flag():
    rule = FirewallRule.from_dict({"id": "r", "rule": "FROM any TO all vms ALLOW icmp TYPE 8", "global": True})
    assert rule.global_ is True
    assert rule.to_dict()["global"] is True
    assert "global" not in FirewallRule(id="r").to_dict()


def test_create_fw_rule_opts_body():
    assert CreateFwRuleOpts(rule="FROM any TO all vms ALLOW tcp PORT 22").to_dict() == {
        "enabled": False,
        "rule": "FROM any TO all vms ALLOW tcp PORT 22",
    }


class TestCreateMachineOpts:
    def test_flattens_metadata_and_tags(self):
        opts = CreateMachineOpts(
            package="Small",
            image="img",
            metadata={"user-script": "echo"},
            tags={"role": "db"},
        )
        assert opts.to_dict() == {
            "package": "Small",
            "image": "img",
            "metadata.user-script": "echo",
            "tag.role": "db",
        }

    def test_optional_fields_present_when_set(self):
        opts = CreateMachineOpts(name="web", package="Small", image="img", networks=["n1"], firewall_enabled=True)
        data = opts.to_dict()
        assert data["name"] == "web"
        assert data["networks"] == ["n1"]
        assert data["firewall_enabled"] is True

    def test_from_flattened_body(self):
        opts = CreateMachineOpts(package="Small", image="img", metadata={"a": "1"}, tags={"b": "2"})
        assert CreateMachineOpts.from_dict(opts.to_dict()) == opts


def test_network_omits_empty_addressing():
    data = Network(id="n", name="public", public=True).to_dict()
    assert "subnet" not in data
    assert "vlan_id" not in data
    assert data["public"] is True


def test_fabric_vlan_wire_name():
    assert FabricVLAN(id=2, name="default").to_dict() == {"vlan_id": 2, "name": "default"}
    assert FabricVLAN.from_dict({"vlan_id": 0, "name": "zero"}).id == 0


@pytest.mark.parametrize(("vlan_id", "valid"), [(0, True), (4095, True), (-1, False), (4096, False), ("2", False)])
def test_valid_vlan_id(vlan_id, valid):
    assert valid_vlan_id(vlan_id) is valid


class TestMachineState:
    @pytest.mark.parametrize(
        ("current", "target", "allowed"),
        [
            ("running", "stopped", True),
            ("stopped", "running", True),
            ("stopped", "deleted", True),
            ("running", "deleted", False),
            ("provisioning", "deleted", False),
            ("deleted", "running", False),
            ("bogus", "running", False),
        ],
    )
    def test_can_transition(self, current, target, allowed):
        assert can_transition(current, target) is allowed

    def test_delete_requires_stopped(self):
        with pytest.raises(InvalidStateError, match="Cannot delete machine abc, machine is not stopped."):
            check_transition("abc", MachineState.RUNNING, MachineState.DELETED)
        check_transition("abc", MachineState.STOPPED, MachineState.DELETED)

    def test_machine_state_property(self):
        assert Machine(state="stopped").machine_state is MachineState.STOPPED
