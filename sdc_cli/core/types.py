"""
Core types for the SDC CloudAPI resources.

These dataclasses mirror the API's JSON shapes. Each record declares where its
attribute names differ from the wire names, and which attributes are left out
of request bodies when empty.
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, ClassVar, TypeVar

from sdc_cli.core.client import InvalidStateError

M = TypeVar("M", bound="APIModel")


def _is_empty(value: Any) -> bool:
    if value is None or value is False:
        return True
    return isinstance(value, (str, list, dict)) and not value


class APIModel:
    """Field-name mapping shared by every resource record."""

    # attribute name -> JSON name, only where they differ
    _json_names: ClassVar[dict[str, str]] = {}
    # attributes omitted from the serialized body when empty
    _omit_empty: ClassVar[frozenset[str]] = frozenset()

    @classmethod
    def from_dict(cls: type[M], data: dict[str, Any]) -> M:
        """Create from API response dict, ignoring unknown keys."""
        kwargs = {}
        for f in fields(cls):
            key = cls._json_names.get(f.name, f.name)
            if data.get(key) is not None:
                kwargs[f.name] = data[key]
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for an API request or response."""
        result: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name in self._omit_empty and _is_empty(value):
                continue
            if isinstance(value, Enum):
                value = value.value
            result[self._json_names.get(f.name, f.name)] = value
        return result


# =============================================================================
# Keys
# =============================================================================


@dataclass
class Key(APIModel):
    """An SSH public key registered on the account."""

    name: str = ""
    fingerprint: str = ""
    key: str = ""


@dataclass
class CreateKeyOpts(APIModel):
    """Options for creating a key."""

    name: str = ""
    key: str = ""

    _omit_empty = frozenset({"name"})


# =============================================================================
# Packages & Images
# =============================================================================


@dataclass
class Package(APIModel):
    """A sizing tier (memory/disk/swap/vcpu bundle)."""

    id: str = ""
    name: str = ""
    memory: int = 0
    disk: int = 0
    swap: int = 0
    vcpus: int = 0
    lwps: int = 0
    default: bool = False
    version: str = ""
    description: str = ""
    group: str = ""


@dataclass
class Image(APIModel):
    """A bootable OS or application template."""

    id: str = ""
    name: str = ""
    os: str = ""
    version: str = ""
    type: str = ""
    description: str = ""
    requirements: dict[str, Any] = field(default_factory=dict)
    homepage: str = ""
    published_at: str = ""
    owner: str = ""
    public: bool = False
    state: str = ""
    tags: dict[str, str] = field(default_factory=dict)
    eula: str = ""
    acl: list[str] = field(default_factory=list)
    error: dict[str, Any] = field(default_factory=dict)

    _omit_empty = frozenset({"error"})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Image":
        """Create from API response dict."""
        image = super().from_dict(data)
        # older API versions send public as a string
        if isinstance(image.public, str):
            image.public = image.public.lower() == "true"
        return image


@dataclass
class CreateImageFromMachineOpts(APIModel):
    """Options for creating an image from a stopped machine."""

    machine: str = ""
    name: str = ""
    version: str = ""
    description: str = ""
    homepage: str = ""
    eula: str = ""
    acl: list[str] = field(default_factory=list)
    tags: dict[str, str] = field(default_factory=dict)

    _omit_empty = frozenset({"description", "homepage", "eula", "acl", "tags"})


# =============================================================================
# Machines
# =============================================================================


class MachineState(str, Enum):
    """Lifecycle states of a machine."""

    PROVISIONING = "provisioning"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    OFFLINE = "offline"
    FAILED = "failed"
    DELETED = "deleted"


_TRANSITIONS: dict[MachineState, frozenset[MachineState]] = {
    MachineState.PROVISIONING: frozenset({MachineState.RUNNING, MachineState.FAILED}),
    MachineState.RUNNING: frozenset({MachineState.RUNNING, MachineState.STOPPING, MachineState.STOPPED}),
    MachineState.STOPPING: frozenset({MachineState.STOPPED}),
    MachineState.STOPPED: frozenset({MachineState.STOPPED, MachineState.RUNNING, MachineState.DELETED}),
    MachineState.OFFLINE: frozenset({MachineState.RUNNING, MachineState.STOPPED}),
    MachineState.FAILED: frozenset(),
    MachineState.DELETED: frozenset(),
}


def can_transition(current: MachineState | str, target: MachineState | str) -> bool:
    """Whether a machine in state current may move to state target."""
    try:
        current, target = MachineState(current), MachineState(target)
    except ValueError:
        return False
    return target in _TRANSITIONS[current]


def check_transition(machine_id: str, current: MachineState | str, target: MachineState | str) -> None:
    """
    Validate a machine state transition.

    Raises:
        InvalidStateError: If the transition is not allowed; deleting is only
            allowed from the stopped state

    """
    if can_transition(current, target):
        return
    current_value = getattr(current, "value", current)
    if MachineState(target) is MachineState.DELETED:
        raise InvalidStateError(
            f"Cannot delete machine {machine_id}, machine is not stopped.",
            details={"state": current_value},
        )
    raise InvalidStateError(
        f"Cannot move machine {machine_id} from {current_value} to {getattr(target, 'value', target)}",
        details={"state": current_value},
    )


@dataclass
class Machine(APIModel):
    """A compute instance."""

    id: str = ""
    name: str = ""
    type: str = ""
    state: str = ""
    memory: int = 0
    disk: int = 0
    ips: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    tags: dict[str, Any] = field(default_factory=dict)
    created: str = ""
    updated: str = ""
    package: str = ""
    image: str = ""
    primary_ip: str = ""
    networks: list[str] = field(default_factory=list)
    firewall_enabled: bool = False
    compute_node: str = ""

    _json_names = {"primary_ip": "primaryIp"}

    @property
    def machine_state(self) -> MachineState:
        """The state as a MachineState (raises ValueError for unknown states)."""
        return MachineState(self.state)


@dataclass
class CreateMachineOpts(APIModel):
    """
    Options for creating a machine.

    Metadata and tags travel as flattened ``metadata.<key>`` and ``tag.<key>``
    body attributes.
    """

    name: str = ""
    package: str = ""
    image: str = ""
    networks: list[str] = field(default_factory=list)
    metadata: dict[str, str] = field(default_factory=dict)
    tags: dict[str, str] = field(default_factory=dict)
    firewall_enabled: bool = False

    _omit_empty = frozenset({"name", "networks", "firewall_enabled"})

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        for key, value in result.pop("metadata").items():
            result[f"metadata.{key}"] = value
        for key, value in result.pop("tags").items():
            result[f"tag.{key}"] = value
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CreateMachineOpts":
        """Rebuild options from a flattened request body."""
        opts = super().from_dict(data)
        for key, value in data.items():
            if key.startswith("metadata."):
                opts.metadata[key[len("metadata.") :]] = value
            elif key.startswith("tag."):
                opts.tags[key[len("tag.") :]] = value
        return opts


@dataclass
class Snapshot(APIModel):
    """A point-in-time snapshot of a machine."""

    name: str = ""
    state: str = ""
    created: str = ""
    updated: str = ""


# =============================================================================
# Firewall
# =============================================================================


@dataclass
class FirewallRule(APIModel):
    """A firewall rule: 'FROM <target a> TO <target b> <action> <protocol> <port>'."""

    id: str = ""
    enabled: bool = False
    rule: str = ""
    global_: bool = False
    description: str = ""

    _json_names = {"global_": "global"}
    _omit_empty = frozenset({"global_", "description"})


@dataclass
class CreateFwRuleOpts(APIModel):
    """Options for creating or updating a firewall rule."""

    enabled: bool = False
    rule: str = ""


# =============================================================================
# Networks & Fabrics
# =============================================================================


@dataclass
class Network(APIModel):
    """A network machines can be attached to."""

    id: str = ""
    name: str = ""
    public: bool = False
    fabric: bool = False
    description: str = ""
    subnet: str = ""
    provision_start_ip: str = ""
    provision_end_ip: str = ""
    gateway: str = ""
    resolvers: list[str] = field(default_factory=list)
    routes: dict[str, str] = field(default_factory=dict)
    internet_nat: bool = False
    vlan_id: int | None = None

    _omit_empty = frozenset(
        {"subnet", "provision_start_ip", "provision_end_ip", "gateway", "resolvers", "routes", "vlan_id"}
    )


@dataclass
class FabricNetwork(Network):
    """A network provisioned on a fabric VLAN."""

    fabric: bool = True


@dataclass
class FabricVLAN(APIModel):
    """A VLAN on the account's default fabric."""

    id: int = 0
    name: str = ""
    description: str = ""

    _json_names = {"id": "vlan_id"}
    _omit_empty = frozenset({"description"})


@dataclass
class CreateFabricNetworkOpts(APIModel):
    """Options for creating a network on a fabric VLAN."""

    name: str = ""
    description: str = ""
    subnet: str = ""
    provision_start_ip: str = ""
    provision_end_ip: str = ""
    gateway: str = ""
    resolvers: list[str] = field(default_factory=list)
    routes: dict[str, str] = field(default_factory=dict)
    internet_nat: bool = False

    _omit_empty = frozenset({"description", "gateway", "routes"})


MIN_VLAN_ID = 0
MAX_VLAN_ID = 4095


def valid_vlan_id(vlan_id: int) -> bool:
    return isinstance(vlan_id, int) and MIN_VLAN_ID <= vlan_id <= MAX_VLAN_ID
