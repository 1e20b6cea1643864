"""
CloudAPI double testing service - in-memory implementation.

FakeCloudAPI keeps long-lived mutable copies of every resource for the
lifetime of a test process and hands out deep copies, so callers never see
later changes through a value they already hold.
"""

import copy
import ipaddress
import random
import uuid
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timezone
from typing import Any, TypeVar

from loguru import logger

from sdc_cli.core.client import NotFoundError, ValidationError
from sdc_cli.core.types import (
    CreateFabricNetworkOpts,
    FabricNetwork,
    FabricVLAN,
    FirewallRule,
    Image,
    Key,
    Machine,
    MachineState,
    Network,
    Package,
    Snapshot,
    check_transition,
    valid_vlan_id,
)
from sdc_cli.localservices.hooks import ServiceInstance, hooked

T = TypeVar("T")

# Compares an item against the string value of one filter key
Comparator = Callable[[Any, str], bool]

PUBLIC_SUBNET = ipaddress.ip_network("32.151.0.0/16")
PRIVATE_SUBNET = ipaddress.ip_network("10.201.0.0/16")


# =============================================================================
# Filtering
# =============================================================================


def _text(attr: str) -> Comparator:
    return lambda item, value: getattr(item, attr) == value


def _number(attr: str) -> Comparator:
    def compare(item: Any, value: str) -> bool:
        try:
            return getattr(item, attr) == int(value)
        except ValueError:
            return False

    return compare


def _flag(attr: str) -> Comparator:
    return lambda item, value: _wire_text(getattr(item, attr)) == value.lower()


def _tag(name: str) -> Comparator:
    return lambda item, value: name in item.tags and _wire_text(item.tags[name]) == value


def _wire_text(value: Any) -> str:
    """Render a value the way it appears in a query string."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)



PACKAGE_FILTERS: dict[str, Comparator] = {
    "name": _text("name"),
    "memory": _number("memory"),
    "disk": _number("disk"),
    "swap": _number("swap"),
    "version": _text("version"),
    "vcpus": _number("vcpus"),
    "group": _text("group"),
}

IMAGE_FILTERS: dict[str, Comparator] = {
    "name": _text("name"),
    "os": _text("os"),
    "version": _text("version"),
    "public": _flag("public"),
    "state": _text("state"),
    "owner": _text("owner"),
    "type": _text("type"),
}

MACHINE_FILTERS: dict[str, Comparator] = {
    "name": _text("name"),
    "type": _text("type"),
    "state": _text("state"),
    "image": _text("image"),
    "memory": _number("memory"),
}

TAG_FILTER_PREFIX = "tags."


def apply_filters(
    items: Iterable[T],
    filters: Mapping[str, Any] | None,
    table: Mapping[str, Comparator],
    tag_filters: bool = False,
) -> list[T]:
    """
    Keep the items matching every known filter key.

    Unknown keys are ignored. With tag_filters, ``tags.<name>`` keys match
    the value of that tag exactly.
    """
    selected = list(items)
    for key, value in (filters or {}).items():
        if key in table:
            compare = table[key]
        elif tag_filters and key.startswith(TAG_FILTER_PREFIX):
            compare = _tag(key[len(TAG_FILTER_PREFIX) :])
        else:
            continue
        selected = [item for item in selected if compare(item, str(value))]
    return selected


def rule_targets_machine(rule: str, machine_id: str) -> bool:
    """Whether a rule names the machine as a ``vm <id>`` target."""
    return f"vm {machine_id}" in rule


# =============================================================================
# Seed data
# =============================================================================


def initial_packages() -> list[Package]:
    return [
        Package(
            name="Micro",
            memory=512,
            disk=8192,
            swap=1024,
            vcpus=1,
            default=False,
            id="12345678-aaaa-bbbb-cccc-000000000000",
            version="1.0.0",
        ),
        Package(
            name="Small",
            memory=1024,
            disk=16384,
            swap=2048,
            vcpus=1,
            default=True,
            id="11223344-1212-abab-3434-aabbccddeeff",
            version="1.0.2",
        ),
        Package(
            name="Medium",
            memory=2048,
            disk=32768,
            swap=4096,
            vcpus=2,
            default=False,
            id="aabbccdd-abcd-abcd-abcd-112233445566",
            version="1.0.4",
        ),
        Package(
            name="Large",
            memory=4096,
            disk=65536,
            swap=16384,
            vcpus=4,
            default=False,
            id="00998877-dddd-eeee-ffff-111111111111",
            version="1.0.1",
        ),
    ]


def initial_images() -> list[Image]:
    smartos_homepage = "http://test.joyent.com/Standard_Instance"
    return [
        Image(
            id="12345678-a1a1-b2b2-c3c3-098765432100",
            name="SmartOS Std",
            os="smartos",
            version="13.3.1",
            type="smartmachine",
            description="Test SmartOS image (32 bit)",
            homepage=smartos_homepage,
            published_at="2014-01-08T17:42:31Z",
            public=True,
            state="active",
        ),
        Image(
            id="12345678-b1b1-a4a4-d8d8-111111999999",
            name="standard32",
            os="smartos",
            version="13.3.1",
            type="smartmachine",
            description="Test SmartOS image (64 bit)",
            homepage=smartos_homepage,
            published_at="2014-01-08T17:43:16Z",
            public=True,
            state="active",
        ),
        Image(
            id="a1b2c3d4-0011-2233-4455-0f1e2d3c4b5a",
            name="centos6.4",
            os="linux",
            version="2.4.1",
            type="virtualmachine",
            description="Test CentOS 6.4 image (64 bit)",
            published_at="2014-01-02T10:58:31Z",
            public=True,
            state="active",
        ),
        Image(
            id="11223344-0a0a-ff99-11bb-0a1b2c3d4e5f",
            name="ubuntu12.04",
            os="linux",
            version="2.3.1",
            type="virtualmachine",
            description="Test Ubuntu 12.04 image (64 bit)",
            published_at="2014-01-20T16:12:31Z",
            public=True,
            state="active",
        ),
        Image(
            id="11223344-0a0a-ee88-22ab-00aa11bb22cc",
            name="ubuntu12.10",
            os="linux",
            version="2.3.2",
            type="virtualmachine",
            description="Test Ubuntu 12.10 image (64 bit)",
            published_at="2014-01-20T16:12:31Z",
            public=True,
            state="active",
        ),
        Image(
            id="11223344-0a0a-dd77-33cd-abcd1234e5f6",
            name="ubuntu13.04",
            os="linux",
            version="2.2.8",
            type="virtualmachine",
            description="Test Ubuntu 13.04 image (64 bit)",
            published_at="2014-01-20T16:12:31Z",
            public=True,
            state="active",
        ),
    ]


def initial_networks() -> list[Network]:
    return [
        Network(id="123abc4d-0011-aabb-2233-ccdd4455", name="Test-Joyent-Public", public=True),
        Network(id="456def0a-33ff-7f8e-9a0b-33bb44cc", name="Test-Joyent-Private", public=False),
    ]


def initial_fabric_vlans() -> list[FabricVLAN]:
    return [FabricVLAN(id=2, name="My-Fabric-VLAN", description="Default fabric VLAN")]


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def _new_id() -> str:
    return str(uuid.uuid4())


# =============================================================================
# Service double
# =============================================================================


class FakeCloudAPI(ServiceInstance):
    """
    In-memory CloudAPI double.

    Example:
        service = FakeCloudAPI()
        machine = service.create_machine(package="Small", image="12345678-a1a1-b2b2-c3c3-098765432100")
        service.stop_machine(machine.id)
        service.delete_machine(machine.id)

    """

    def __init__(self, user_account: str = "", rng: random.Random | None = None):
        super().__init__(user_account=user_account)

        self.keys: list[Key] = []
        self.packages = initial_packages()
        self.images = initial_images()
        self.machines: list[Machine] = []
        self.machine_fw: dict[str, bool] = {}
        self.snapshots: dict[str, list[Snapshot]] = {}
        self.firewall_rules: list[FirewallRule] = []
        self.networks = initial_networks()
        self.fabric_vlans = initial_fabric_vlans()
        self.fabric_networks: list[FabricNetwork] = []
        self.rng = rng or random.Random()

    # -------------------------------------------------------------------------
    # Lookups (no hooks)
    # -------------------------------------------------------------------------

    def _find_package(self, ref: str) -> Package | None:
        for pkg in self.packages:
            if pkg.name == ref:
                return pkg
        for pkg in self.packages:
            if pkg.id == ref:
                return pkg
        return None

    def _find_image(self, ref: str) -> Image | None:
        for image in self.images:
            if image.name == ref:
                return image
        for image in self.images:
            if image.id == ref:
                return image
        return None

    def _find_network(self, network_id: str) -> Network | None:
        for network in self.networks:
            if network.id.lower() == network_id.lower():
                return network
        return None

    def _machine(self, machine_id: str) -> Machine:
        for machine in self.machines:
            if machine.id == machine_id:
                return machine
        raise NotFoundError(f"Machine {machine_id} not found")

    def _rule(self, rule_id: str) -> FirewallRule:
        for rule in self.firewall_rules:
            if rule.id.lower() == rule_id.lower():
                return rule
        raise NotFoundError(f"Firewall rule {rule_id} not found")

    def _vlan(self, vlan_id: int) -> FabricVLAN:
        for vlan in self.fabric_vlans:
            if vlan.id == vlan_id:
                return vlan
        raise NotFoundError(f"Fabric VLAN {vlan_id} not found")

    def _view(self, machine: Machine) -> Machine:
        view = copy.deepcopy(machine)
        view.firewall_enabled = self.machine_fw.get(machine.id, False)
        return view

    def _public_ip(self) -> str:
        return str(PUBLIC_SUBNET[self.rng.randrange(1, PUBLIC_SUBNET.num_addresses - 1)])

    def _private_ip(self) -> str:
        return str(PRIVATE_SUBNET[self.rng.randrange(1, PRIVATE_SUBNET.num_addresses - 1)])

    # =========================================================================
    # Keys
    # =========================================================================

    @hooked
    def list_keys(self) -> list[Key]:
        return copy.deepcopy(self.keys)

    @hooked
    def get_key(self, key_name: str) -> Key:
        for key in self.keys:
            if key.name == key_name:
                return copy.deepcopy(key)
        raise NotFoundError(f"Key {key_name} not found")

    @hooked
    def create_key(self, key_name: str, key: str) -> Key:
        if not key_name or not key:
            raise ValidationError("Key name and key are required")
        for k in self.keys:
            if k.name == key_name:
                raise ValidationError(f"Key name {key_name} already in use")
            if k.key == key:
                raise ValidationError(f"Key {key} already exists")

        new_key = Key(name=key_name, fingerprint="", key=key)
        self.keys.append(new_key)
        logger.debug("Created key {}", key_name)
        return copy.deepcopy(new_key)

    @hooked
    def delete_key(self, key_name: str) -> None:
        for i, key in enumerate(self.keys):
            if key.name == key_name:
                del self.keys[i]
                logger.debug("Deleted key {}", key_name)
                return
        raise NotFoundError(f"Key {key_name} not found")

    # =========================================================================
    # Packages
    # =========================================================================

    @hooked
    def list_packages(self, filters: Mapping[str, Any] | None = None) -> list[Package]:
        return copy.deepcopy(apply_filters(self.packages, filters, PACKAGE_FILTERS))

    @hooked
    def get_package(self, package_name: str) -> Package:
        pkg = self._find_package(package_name)
        if pkg is None:
            raise NotFoundError(f"Package {package_name} not found")
        return copy.deepcopy(pkg)

    # =========================================================================
    # Images
    # =========================================================================

    @hooked
    def list_images(self, filters: Mapping[str, Any] | None = None) -> list[Image]:
        return copy.deepcopy(apply_filters(self.images, filters, IMAGE_FILTERS))

    @hooked
    def get_image(self, image_id: str) -> Image:
        image = self._find_image(image_id)
        if image is None:
            raise NotFoundError(f"Image {image_id} not found")
        return copy.deepcopy(image)

    @hooked
    def create_image_from_machine(
        self,
        machine_id: str,
        name: str,
        version: str,
        description: str = "",
        tags: Mapping[str, str] | None = None,
    ) -> Image:
        machine = self._machine(machine_id)
        if not name or not version:
            raise ValidationError("Image name and version are required")
        for image in self.images:
            if image.name == name and image.version == version:
                raise ValidationError(f"Image {name} version {version} already exists")
        source = self._find_image(machine.image)

        image = Image(
            id=_new_id(),
            name=name,
            os=source.os if source else "",
            version=version,
            type=machine.type,
            description=description,
            published_at=_now(),
            owner=self.user_account,
            public=False,
            state="active",
            tags=dict(tags or {}),
        )
        self.images.append(image)
        logger.debug("Created image {} from machine {}", image.id, machine_id)
        return copy.deepcopy(image)

    @hooked
    def delete_image(self, image_id: str) -> None:
        for i, image in enumerate(self.images):
            if image.id == image_id:
                del self.images[i]
                return
        raise NotFoundError(f"Image {image_id} not found")

    # =========================================================================
    # Machines
    # =========================================================================

    @hooked
    def list_machines(self, filters: Mapping[str, Any] | None = None) -> list[Machine]:
        machines = apply_filters(self.machines, filters, MACHINE_FILTERS, tag_filters=True)
        return [self._view(m) for m in machines]

    @hooked
    def count_machines(self, filters: Mapping[str, Any] | None = None) -> int:
        return len(apply_filters(self.machines, filters, MACHINE_FILTERS, tag_filters=True))

    @hooked
    def get_machine(self, machine_id: str) -> Machine:
        return self._view(self._machine(machine_id))

    @hooked
    def create_machine(
        self,
        name: str = "",
        package: str = "",
        image: str = "",
        networks: Iterable[str] | None = None,
        metadata: Mapping[str, Any] | None = None,
        tags: Mapping[str, Any] | None = None,
        firewall_enabled: bool = False,
    ) -> Machine:
        """Create a machine; it is running immediately."""
        pkg = self._find_package(package)
        if pkg is None:
            raise ValidationError(f"Package {package} not found")
        img = self._find_image(image)
        if img is None:
            raise ValidationError(f"Image {image} not found")

        network_ids = []
        for network_id in networks or []:
            network = self._find_network(network_id)
            if network is None:
                raise ValidationError(f"Network {network_id} not found")
            network_ids.append(network.id)

        public_ip = self._public_ip()
        now = _now()
        machine = Machine(
            id=_new_id(),
            name=name,
            type=img.type,
            state=MachineState.RUNNING,
            memory=pkg.memory,
            disk=pkg.disk,
            ips=[public_ip, self._private_ip()],
            metadata=dict(metadata or {}),
            tags=dict(tags or {}),
            created=now,
            updated=now,
            package=package,
            image=image,
            primary_ip=public_ip,
            networks=network_ids,
        )
        self.machines.append(machine)
        self.machine_fw[machine.id] = firewall_enabled
        logger.debug("Created machine {} ({}, {})", machine.id, package, image)
        return self._view(machine)

    def _set_state(self, machine_id: str, target: MachineState) -> None:
        machine = self._machine(machine_id)
        check_transition(machine_id, machine.state, target)
        machine.state = target
        machine.updated = _now()
        logger.debug("Machine {} is now {}", machine_id, target.value)

    @hooked
    def stop_machine(self, machine_id: str) -> None:
        self._set_state(machine_id, MachineState.STOPPED)

    @hooked
    def start_machine(self, machine_id: str) -> None:
        self._set_state(machine_id, MachineState.RUNNING)

    @hooked
    def reboot_machine(self, machine_id: str) -> None:
        self._set_state(machine_id, MachineState.RUNNING)

    @hooked
    def resize_machine(self, machine_id: str, package_name: str) -> None:
        """Change a machine's package. Unlike the real API, downsizing is allowed."""
        machine = self._machine(machine_id)
        pkg = self._find_package(package_name)
        if pkg is None:
            raise ValidationError(f"Package {package_name} not found")
        machine.package = package_name
        machine.memory = pkg.memory
        machine.disk = pkg.disk
        machine.updated = _now()

    @hooked
    def rename_machine(self, machine_id: str, new_name: str) -> None:
        machine = self._machine(machine_id)
        if not new_name:
            raise ValidationError("Machine name is required")
        machine.name = new_name
        machine.updated = _now()

    @hooked
    def delete_machine(self, machine_id: str) -> None:
        machine = self._machine(machine_id)
        check_transition(machine_id, machine.state, MachineState.DELETED)
        self.machines.remove(machine)
        self.machine_fw.pop(machine_id, None)
        self.snapshots.pop(machine_id, None)
        logger.debug("Deleted machine {}", machine_id)

    # -------------------------------------------------------------------------
    # Machine firewall
    # -------------------------------------------------------------------------

    @hooked
    def list_machine_firewall_rules(self, machine_id: str) -> list[FirewallRule]:
        self._machine(machine_id)
        return copy.deepcopy([r for r in self.firewall_rules if rule_targets_machine(r.rule, machine_id)])

    @hooked
    def enable_firewall_machine(self, machine_id: str) -> None:
        self._machine(machine_id)
        self.machine_fw[machine_id] = True

    @hooked
    def disable_firewall_machine(self, machine_id: str) -> None:
        self._machine(machine_id)
        self.machine_fw[machine_id] = False

    # -------------------------------------------------------------------------
    # Machine metadata
    # -------------------------------------------------------------------------

    @hooked
    def get_machine_metadata(self, machine_id: str) -> dict[str, Any]:
        return dict(self._machine(machine_id).metadata)

    @hooked
    def update_machine_metadata(self, machine_id: str, metadata: Mapping[str, Any]) -> dict[str, Any]:
        machine = self._machine(machine_id)
        machine.metadata.update(metadata)
        machine.updated = _now()
        return dict(machine.metadata)

    @hooked
    def delete_machine_metadata(self, machine_id: str, key: str) -> None:
        machine = self._machine(machine_id)
        if key not in machine.metadata:
            raise NotFoundError(f"Metadata key {key} not found on machine {machine_id}")
        del machine.metadata[key]

    @hooked
    def delete_all_machine_metadata(self, machine_id: str) -> None:
        self._machine(machine_id).metadata.clear()

    # -------------------------------------------------------------------------
    # Machine tags
    # -------------------------------------------------------------------------

    @hooked
    def list_machine_tags(self, machine_id: str) -> dict[str, Any]:
        return dict(self._machine(machine_id).tags)

    @hooked
    def add_machine_tags(self, machine_id: str, tags: Mapping[str, Any]) -> dict[str, Any]:
        machine = self._machine(machine_id)
        machine.tags.update(tags)
        return dict(machine.tags)

    @hooked
    def replace_machine_tags(self, machine_id: str, tags: Mapping[str, Any]) -> dict[str, Any]:
        machine = self._machine(machine_id)
        machine.tags = dict(tags)
        return dict(machine.tags)

    @hooked
    def get_machine_tag(self, machine_id: str, tag: str) -> Any:
        machine = self._machine(machine_id)
        if tag not in machine.tags:
            raise NotFoundError(f"Tag {tag} not found on machine {machine_id}")
        return machine.tags[tag]

    @hooked
    def delete_machine_tag(self, machine_id: str, tag: str) -> None:
        machine = self._machine(machine_id)
        if tag not in machine.tags:
            raise NotFoundError(f"Tag {tag} not found on machine {machine_id}")
        del machine.tags[tag]

    @hooked
    def delete_machine_tags(self, machine_id: str) -> None:
        self._machine(machine_id).tags.clear()

    # -------------------------------------------------------------------------
    # Machine snapshots
    # -------------------------------------------------------------------------

    def _snapshot(self, machine_id: str, name: str) -> Snapshot:
        self._machine(machine_id)
        for snapshot in self.snapshots.get(machine_id, []):
            if snapshot.name == name:
                return snapshot
        raise NotFoundError(f"Snapshot {name} not found for machine {machine_id}")

    @hooked
    def list_machine_snapshots(self, machine_id: str) -> list[Snapshot]:
        self._machine(machine_id)
        return copy.deepcopy(self.snapshots.get(machine_id, []))

    @hooked
    def get_machine_snapshot(self, machine_id: str, name: str) -> Snapshot:
        return copy.deepcopy(self._snapshot(machine_id, name))

    @hooked
    def create_machine_snapshot(self, machine_id: str, name: str) -> Snapshot:
        self._machine(machine_id)
        if not name:
            raise ValidationError("Snapshot name is required")
        existing = self.snapshots.setdefault(machine_id, [])
        if any(s.name == name for s in existing):
            raise ValidationError(f"Snapshot {name} already exists for machine {machine_id}")
        now = _now()
        snapshot = Snapshot(name=name, state="created", created=now, updated=now)
        existing.append(snapshot)
        return copy.deepcopy(snapshot)

    @hooked
    def start_machine_from_snapshot(self, machine_id: str, name: str) -> None:
        self._snapshot(machine_id, name)
        self._set_state(machine_id, MachineState.RUNNING)

    @hooked
    def delete_machine_snapshot(self, machine_id: str, name: str) -> None:
        snapshot = self._snapshot(machine_id, name)
        self.snapshots[machine_id].remove(snapshot)

    # =========================================================================
    # Firewall rules
    # =========================================================================

    @hooked
    def list_firewall_rules(self) -> list[FirewallRule]:
        return copy.deepcopy(self.firewall_rules)

    @hooked
    def get_firewall_rule(self, fw_rule_id: str) -> FirewallRule:
        return copy.deepcopy(self._rule(fw_rule_id))

    @hooked
    def create_firewall_rule(self, rule: str, enabled: bool) -> FirewallRule:
        fw_rule = FirewallRule(id=_new_id(), rule=rule, enabled=enabled)
        self.firewall_rules.append(fw_rule)
        logger.debug("Created firewall rule {}", fw_rule.id)
        return copy.deepcopy(fw_rule)

    @hooked
    def update_firewall_rule(self, fw_rule_id: str, rule: str, enabled: bool) -> FirewallRule:
        fw_rule = self._rule(fw_rule_id)
        fw_rule.rule = rule
        fw_rule.enabled = enabled
        return copy.deepcopy(fw_rule)

    @hooked
    def enable_firewall_rule(self, fw_rule_id: str) -> FirewallRule:
        fw_rule = self._rule(fw_rule_id)
        fw_rule.enabled = True
        return copy.deepcopy(fw_rule)

    @hooked
    def disable_firewall_rule(self, fw_rule_id: str) -> FirewallRule:
        fw_rule = self._rule(fw_rule_id)
        fw_rule.enabled = False
        return copy.deepcopy(fw_rule)

    @hooked
    def delete_firewall_rule(self, fw_rule_id: str) -> None:
        self.firewall_rules.remove(self._rule(fw_rule_id))

    @hooked
    def list_firewall_rule_machines(self, fw_rule_id: str) -> list[Machine]:
        fw_rule = self._rule(fw_rule_id)
        return [self._view(m) for m in self.machines if rule_targets_machine(fw_rule.rule, m.id)]

    # =========================================================================
    # Networks
    # =========================================================================

    @hooked
    def list_networks(self) -> list[Network]:
        return copy.deepcopy(self.networks)

    @hooked
    def get_network(self, network_id: str) -> Network:
        network = self._find_network(network_id)
        if network is None:
            raise NotFoundError(f"Network {network_id} not found")
        return copy.deepcopy(network)

    # =========================================================================
    # Fabrics
    # =========================================================================

    @hooked
    def list_fabric_vlans(self) -> list[FabricVLAN]:
        return copy.deepcopy(self.fabric_vlans)

    @hooked
    def get_fabric_vlan(self, vlan_id: int) -> FabricVLAN:
        return copy.deepcopy(self._vlan(vlan_id))

    @hooked
    def create_fabric_vlan(self, vlan: FabricVLAN) -> FabricVLAN:
        if not valid_vlan_id(vlan.id):
            raise ValidationError(f"VLAN id {vlan.id} must be between 0 and 4095")
        if not vlan.name:
            raise ValidationError("VLAN name is required")
        if any(v.id == vlan.id for v in self.fabric_vlans):
            raise ValidationError(f"VLAN {vlan.id} already exists")
        new_vlan = copy.deepcopy(vlan)
        self.fabric_vlans.append(new_vlan)
        return copy.deepcopy(new_vlan)

    @hooked
    def update_fabric_vlan(self, vlan: FabricVLAN) -> FabricVLAN:
        existing = self._vlan(vlan.id)
        if vlan.name:
            existing.name = vlan.name
        existing.description = vlan.description
        return copy.deepcopy(existing)

    @hooked
    def delete_fabric_vlan(self, vlan_id: int) -> None:
        vlan = self._vlan(vlan_id)
        if any(n.vlan_id == vlan_id for n in self.fabric_networks):
            raise ValidationError(f"VLAN {vlan_id} still has networks")
        self.fabric_vlans.remove(vlan)

    def _fabric_network(self, vlan_id: int, network_id: str) -> FabricNetwork:
        self._vlan(vlan_id)
        for network in self.fabric_networks:
            if network.vlan_id == vlan_id and network.id.lower() == network_id.lower():
                return network
        raise NotFoundError(f"Fabric network {network_id} not found on VLAN {vlan_id}")

    @hooked
    def list_fabric_networks(self, vlan_id: int) -> list[FabricNetwork]:
        self._vlan(vlan_id)
        return copy.deepcopy([n for n in self.fabric_networks if n.vlan_id == vlan_id])

    @hooked
    def get_fabric_network(self, vlan_id: int, network_id: str) -> FabricNetwork:
        return copy.deepcopy(self._fabric_network(vlan_id, network_id))

    @hooked
    def create_fabric_network(self, vlan_id: int, opts: CreateFabricNetworkOpts) -> FabricNetwork:
        self._vlan(vlan_id)
        if not opts.name:
            raise ValidationError("Network name is required")
        try:
            subnet = ipaddress.ip_network(opts.subnet)
            for address in (opts.provision_start_ip, opts.provision_end_ip, opts.gateway):
                if address and ipaddress.ip_address(address) not in subnet:
                    raise ValidationError(f"{address} is not in subnet {opts.subnet}")
        except ValueError as e:
            raise ValidationError(f"Invalid network addressing: {e}")

        network = FabricNetwork(
            id=_new_id(),
            name=opts.name,
            public=False,
            description=opts.description,
            subnet=opts.subnet,
            provision_start_ip=opts.provision_start_ip,
            provision_end_ip=opts.provision_end_ip,
            gateway=opts.gateway,
            resolvers=list(opts.resolvers),
            routes=dict(opts.routes),
            internet_nat=opts.internet_nat,
            vlan_id=vlan_id,
        )
        self.fabric_networks.append(network)
        return copy.deepcopy(network)

    @hooked
    def delete_fabric_network(self, vlan_id: int, network_id: str) -> None:
        self.fabric_networks.remove(self._fabric_network(vlan_id, network_id))
