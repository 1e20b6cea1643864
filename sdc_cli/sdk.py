"""
SDC SDK - High-level CloudAPI client with nice ergonomics.

This layer provides one typed method per CloudAPI endpoint, grouped by
resource family. Built on top of the core APIClient.
"""

import builtins
import time
from collections.abc import Mapping
from typing import Any

from sdc_cli.core.auth import Credentials
from sdc_cli.core.client import APIClient, APIError, Transport, ValidationError
from sdc_cli.core.filter import Filter
from sdc_cli.core.request import (
    ACTION_DISABLE_FIREWALL,
    ACTION_ENABLE_FIREWALL,
    ACTION_REBOOT,
    ACTION_RENAME,
    ACTION_RESIZE,
    ACTION_START,
    ACTION_STOP,
    API_FABRIC_NETWORKS,
    API_FABRIC_VLANS,
    API_FIREWALL_RULES,
    API_FIREWALL_RULES_DISABLE,
    API_FIREWALL_RULES_ENABLE,
    API_IMAGES,
    API_KEYS,
    API_MACHINES,
    API_METADATA,
    API_NETWORKS,
    API_PACKAGES,
    API_SNAPSHOTS,
    API_TAGS,
    HTTP_ACCEPTED,
    HTTP_CREATED,
    make_path,
)
from sdc_cli.core.types import (
    CreateFabricNetworkOpts,
    CreateFwRuleOpts,
    CreateImageFromMachineOpts,
    CreateKeyOpts,
    CreateMachineOpts,
    FabricNetwork,
    FabricVLAN,
    FirewallRule,
    Image,
    Key,
    Machine,
    Network,
    Package,
    Snapshot,
    valid_vlan_id,
)


class CloudAPIClient:
    """
    High-level CloudAPI client with typed methods and nice ergonomics.

    Example:
        client = CloudAPIClient()

        # Create a machine and wait for it
        machine = client.machines.create(CreateMachineOpts(package="g4-highcpu-1G", image=image_id))
        machine = client.machines.wait_for_state(machine.id, "running")

        # Narrow a listing
        f = Filter()
        f.set("memory", 1024)
        small = client.machines.list(f)

    """

    def __init__(
        self,
        base_url: str | None = None,
        credentials: Credentials | None = None,
        api_version: str | None = None,
        transport: Transport | None = None,
        timeout: int = 60,
    ):
        """
        Initialize the CloudAPI client.

        Args:
            base_url: CloudAPI endpoint (or SDC_URL env var)
            credentials: Signing credentials (or SDC_ACCOUNT / SDC_KEY_ID / SDC_KEY_FILE env vars)
            api_version: Api-Version header (or SDC_API_VERSION env var)
            transport: Transport override, e.g. a FakeTransport for local tests
            timeout: Request timeout in seconds

        """
        self._client = APIClient(
            base_url=base_url,
            credentials=credentials,
            api_version=api_version,
            transport=transport,
            timeout=timeout,
        )

        # Sub-clients for different resource families
        self.keys = KeyOperations(self._client)
        self.packages = PackageOperations(self._client)
        self.images = ImageOperations(self._client)
        self.machines = MachineOperations(self._client)
        self.firewall_rules = FirewallRuleOperations(self._client)
        self.networks = NetworkOperations(self._client)
        self.fabrics = FabricOperations(self._client)

    @property
    def base_url(self) -> str:
        """Get the CloudAPI endpoint."""
        return self._client.base_url


# =============================================================================
# Key Operations
# =============================================================================


class KeyOperations:
    """Operations for SSH keys on the account."""

    def __init__(self, client: APIClient):
        self._client = client

    def list(self) -> builtins.list[Key]:
        """List all keys on record for the account."""
        result = self._client.get(make_path(API_KEYS), error="failed to get list of keys")
        return [Key.from_dict(k) for k in result or []]

    def get(self, key_name: str) -> Key:
        """
        Get a key by name.

        Args:
            key_name: The key name (or fingerprint)

        Returns:
            Key details

        """
        result = self._client.get(make_path(API_KEYS, key_name), error=f"failed to get key with name: {key_name}")
        return Key.from_dict(result)

    def create(self, opts: CreateKeyOpts) -> Key:
        """
        Upload a new public key.

        Args:
            opts: Key name and public key material

        Returns:
            The created Key

        """
        result = self._client.post(
            make_path(API_KEYS),
            opts.to_dict(),
            expected_status=HTTP_CREATED,
            error=f"failed to create key with name {opts.name}",
        )
        return Key.from_dict(result)

    def delete(self, key_name: str) -> bool:
        """Delete a key by name."""
        self._client.delete(make_path(API_KEYS, key_name), error=f"failed to delete key with name {key_name}")
        return True


# =============================================================================
# Package & Image Operations
# =============================================================================


class PackageOperations:
    """Operations for packages (machine sizes)."""

    def __init__(self, client: APIClient):
        self._client = client

    def list(self, filters: Filter | None = None) -> builtins.list[Package]:
        """
        List packages available to the account.

        Args:
            filters: Optional constraints (name, memory, disk, swap, version, vcpus, group)

        Returns:
            Packages in server order

        """
        result = self._client.get(make_path(API_PACKAGES), filters, error="failed to get list of packages")
        return [Package.from_dict(p) for p in result or []]

    def get(self, package_name: str) -> Package:
        """Get a package by id or name."""
        result = self._client.get(
            make_path(API_PACKAGES, package_name),
            error=f"failed to get package with name: {package_name}",
        )
        return Package.from_dict(result)


class ImageOperations:
    """Operations for images."""

    def __init__(self, client: APIClient):
        self._client = client

    def list(self, filters: Filter | None = None) -> builtins.list[Image]:
        """
        List images available to the account.

        Args:
            filters: Optional constraints (name, os, version, public, state, owner, type)

        Returns:
            Images in server order

        """
        result = self._client.get(make_path(API_IMAGES), filters, error="failed to get list of images")
        return [Image.from_dict(i) for i in result or []]

    def get(self, image_id: str) -> Image:
        """Get an image by id."""
        result = self._client.get(make_path(API_IMAGES, image_id), error=f"failed to get image with id: {image_id}")
        return Image.from_dict(result)

    def create_from_machine(self, opts: CreateImageFromMachineOpts) -> Image:
        """
        Create a new custom image from a machine.

        Args:
            opts: Source machine id, image name and version, plus optional details

        Returns:
            The created Image

        """
        result = self._client.post(
            make_path(API_IMAGES),
            opts.to_dict(),
            expected_status=HTTP_CREATED,
            error=f"failed to create image from machine {opts.machine}",
        )
        return Image.from_dict(result)

    def delete(self, image_id: str) -> bool:
        """Delete a custom image."""
        self._client.delete(make_path(API_IMAGES, image_id), error=f"failed to delete image with id: {image_id}")
        return True


# =============================================================================
# Machine Operations
# =============================================================================


class MachineOperations:
    """Operations for machines, with sub-operations for metadata, tags, snapshots and firewall."""

    def __init__(self, client: APIClient):
        self._client = client
        self.metadata = MachineMetadataOperations(client)
        self.tags = MachineTagOperations(client)
        self.snapshots = MachineSnapshotOperations(client)
        self.firewall = MachineFirewallOperations(client)

    def list(self, filters: Filter | None = None) -> builtins.list[Machine]:
        """
        List machines on the account.

        Args:
            filters: Optional constraints (name, type, state, image, memory, tags.<name>)

        Returns:
            Machines in server order

        """
        result = self._client.get(make_path(API_MACHINES), filters, error="failed to get list of machines")
        return [Machine.from_dict(m) for m in result or []]

    def count(self, filters: Filter | None = None) -> int:
        """Count the machines matching filters."""
        return len(self.list(filters))

    def get(self, machine_id: str) -> Machine:
        """Get a machine by id."""
        result = self._client.get(
            make_path(API_MACHINES, machine_id),
            error=f"failed to get machine with id: {machine_id}",
        )
        return Machine.from_dict(result)

    def create(self, opts: CreateMachineOpts) -> Machine:
        """
        Provision a new machine.

        Args:
            opts: Package and image (required), plus optional name, networks, metadata and tags

        Returns:
            The new Machine as first reported by the server

        """
        result = self._client.post(
            make_path(API_MACHINES),
            opts.to_dict(),
            expected_status=HTTP_CREATED,
            error=f"failed to create machine with name: {opts.name}",
        )
        return Machine.from_dict(result)

    def _action(self, machine_id: str, params: Mapping[str, Any], error: str) -> bool:
        path = make_path(API_MACHINES, machine_id)
        self._client.post(path, params=params, expected_status=HTTP_ACCEPTED, error=error)
        return True

    def stop(self, machine_id: str) -> bool:
        """Stop a running machine."""
        return self._action(machine_id, {"action": ACTION_STOP}, f"failed to stop machine with id: {machine_id}")

    def start(self, machine_id: str) -> bool:
        """Start a stopped machine."""
        return self._action(machine_id, {"action": ACTION_START}, f"failed to start machine with id: {machine_id}")

    def reboot(self, machine_id: str) -> bool:
        """Reboot a machine."""
        return self._action(machine_id, {"action": ACTION_REBOOT}, f"failed to reboot machine with id: {machine_id}")

    def resize(self, machine_id: str, package_name: str) -> bool:
        """Resize a machine to a new package."""
        return self._action(
            machine_id,
            {"action": ACTION_RESIZE, "package": package_name},
            f"failed to resize machine with id: {machine_id}",
        )

    def rename(self, machine_id: str, name: str) -> bool:
        """Rename a machine."""
        return self._action(
            machine_id,
            {"action": ACTION_RENAME, "name": name},
            f"failed to rename machine with id: {machine_id}",
        )

    def delete(self, machine_id: str) -> bool:
        """Delete a machine; the server only allows this once it is stopped."""
        self._client.delete(
            make_path(API_MACHINES, machine_id),
            error=f"failed to delete machine with id {machine_id}",
        )
        return True

    def wait_for_state(
        self,
        machine_id: str,
        state: str,
        poll_interval: float = 1.0,
        timeout: float = 300.0,
    ) -> Machine:
        """
        Wait for a machine to reach a state.

        Args:
            machine_id: The machine id
            state: Target state, e.g. "running" or "stopped"
            poll_interval: Seconds between status checks
            timeout: Maximum seconds to wait

        Returns:
            The Machine once it is in the target state

        Raises:
            APIError: On timeout or if the machine fails

        """
        start = time.time()
        while True:
            machine = self.get(machine_id)

            if machine.state.lower() == state.lower():
                return machine
            if machine.state == "failed":
                raise APIError(f"Machine {machine_id} failed", details={"machine": machine.to_dict()})

            if time.time() - start > timeout:
                raise APIError(
                    f"Timeout waiting for machine {machine_id} to be {state} (state: {machine.state})",
                    details={"machine": machine.to_dict()},
                )

            time.sleep(poll_interval)


class MachineMetadataOperations:
    """Operations for machine metadata."""

    def __init__(self, client: APIClient):
        self._client = client

    def get(self, machine_id: str) -> dict[str, Any]:
        """Get the complete metadata of a machine."""
        result = self._client.get(
            make_path(API_MACHINES, machine_id, API_METADATA),
            error=f"failed to get list of metadata for machine with id {machine_id}",
        )
        return result or {}

    def update(self, machine_id: str, metadata: Mapping[str, str]) -> dict[str, Any]:
        """
        Update metadata on a machine.

        Keys are created if they do not exist and overwritten if they do.

        Returns:
            The machine's complete metadata after the update

        """
        result = self._client.post(
            make_path(API_MACHINES, machine_id, API_METADATA),
            dict(metadata),
            error=f"failed to update metadata for machine with id {machine_id}",
        )
        return result or {}

    def delete(self, machine_id: str, key: str) -> bool:
        """Delete a single metadata key."""
        self._client.delete(
            make_path(API_MACHINES, machine_id, API_METADATA, key),
            error=f"failed to delete metadata with key {key} for machine with id {machine_id}",
        )
        return True

    def delete_all(self, machine_id: str) -> bool:
        """Delete every metadata key."""
        self._client.delete(
            make_path(API_MACHINES, machine_id, API_METADATA),
            error=f"failed to delete metadata for machine with id {machine_id}",
        )
        return True


class MachineTagOperations:
    """Operations for machine tags."""

    def __init__(self, client: APIClient):
        self._client = client

    def list(self, machine_id: str) -> dict[str, Any]:
        result = self._client.get(
            make_path(API_MACHINES, machine_id, API_TAGS),
            error=f"failed to get list of tags for machine with id {machine_id}",
        )
        return result or {}

    def add(self, machine_id: str, tags: Mapping[str, Any]) -> dict[str, Any]:
        """Add tags, keeping existing ones. Returns all tags."""
        result = self._client.post(
            make_path(API_MACHINES, machine_id, API_TAGS),
            dict(tags),
            error=f"failed to add tags for machine with id {machine_id}",
        )
        return result or {}

    def replace(self, machine_id: str, tags: Mapping[str, Any]) -> dict[str, Any]:
        """Replace all tags. Returns all tags."""
        result = self._client.put(
            make_path(API_MACHINES, machine_id, API_TAGS),
            dict(tags),
            error=f"failed to replace tags for machine with id {machine_id}",
        )
        return result or {}

    def get(self, machine_id: str, tag: str) -> Any:
        return self._client.get(
            make_path(API_MACHINES, machine_id, API_TAGS, tag),
            error=f"failed to get tag {tag} for machine with id {machine_id}",
        )

    def delete(self, machine_id: str, tag: str) -> bool:
        self._client.delete(
            make_path(API_MACHINES, machine_id, API_TAGS, tag),
            error=f"failed to delete tag {tag} for machine with id {machine_id}",
        )
        return True

    def delete_all(self, machine_id: str) -> bool:
        self._client.delete(
            make_path(API_MACHINES, machine_id, API_TAGS),
            error=f"failed to delete tags for machine with id {machine_id}",
        )
        return True


class MachineSnapshotOperations:
    """Operations for machine snapshots."""

    def __init__(self, client: APIClient):
        self._client = client

    def list(self, machine_id: str) -> builtins.list[Snapshot]:
        result = self._client.get(
            make_path(API_MACHINES, machine_id, API_SNAPSHOTS),
            error=f"failed to get list of snapshots for machine with id {machine_id}",
        )
        return [Snapshot.from_dict(s) for s in result or []]

    def get(self, machine_id: str, name: str) -> Snapshot:
        result = self._client.get(
            make_path(API_MACHINES, machine_id, API_SNAPSHOTS, name),
            error=f"failed to get snapshot {name} for machine with id {machine_id}",
        )
        return Snapshot.from_dict(result)

    def create(self, machine_id: str, name: str) -> Snapshot:
        result = self._client.post(
            make_path(API_MACHINES, machine_id, API_SNAPSHOTS),
            {"name": name},
            expected_status=HTTP_CREATED,
            error=f"failed to create snapshot {name} from machine with id {machine_id}",
        )
        return Snapshot.from_dict(result)

    def start(self, machine_id: str, name: str) -> bool:
        """Start a stopped machine from one of its snapshots."""
        self._client.post(
            make_path(API_MACHINES, machine_id, API_SNAPSHOTS, name),
            expected_status=HTTP_ACCEPTED,
            error=f"failed to start machine with id {machine_id} from snapshot {name}",
        )
        return True

    def delete(self, machine_id: str, name: str) -> bool:
        self._client.delete(
            make_path(API_MACHINES, machine_id, API_SNAPSHOTS, name),
            error=f"failed to delete snapshot {name} for machine with id {machine_id}",
        )
        return True


class MachineFirewallOperations:
    """Operations for a machine's firewall."""

    def __init__(self, client: APIClient):
        self._client = client

    def list_rules(self, machine_id: str) -> builtins.list[FirewallRule]:
        """List the firewall rules that apply to a machine."""
        result = self._client.get(
            make_path(API_MACHINES, machine_id, API_FIREWALL_RULES),
            error=f"failed to get list of firewall rules for machine with id {machine_id}",
        )
        return [FirewallRule.from_dict(r) for r in result or []]

    def enable(self, machine_id: str) -> bool:
        self._client.post(
            make_path(API_MACHINES, machine_id),
            params={"action": ACTION_ENABLE_FIREWALL},
            expected_status=HTTP_ACCEPTED,
            error=f"failed to enable firewall on machine with id: {machine_id}",
        )
        return True

    def disable(self, machine_id: str) -> bool:
        self._client.post(
            make_path(API_MACHINES, machine_id),
            params={"action": ACTION_DISABLE_FIREWALL},
            expected_status=HTTP_ACCEPTED,
            error=f"failed to disable firewall on machine with id: {machine_id}",
        )
        return True


# =============================================================================
# Firewall Rule Operations
# =============================================================================


class FirewallRuleOperations:
    """Operations for account firewall rules."""

    def __init__(self, client: APIClient):
        self._client = client

    def list(self) -> builtins.list[FirewallRule]:
        result = self._client.get(make_path(API_FIREWALL_RULES), error="failed to get list of firewall rules")
        return [FirewallRule.from_dict(r) for r in result or []]

    def get(self, fw_rule_id: str) -> FirewallRule:
        result = self._client.get(
            make_path(API_FIREWALL_RULES, fw_rule_id),
            error=f"failed to get firewall rule with id {fw_rule_id}",
        )
        return FirewallRule.from_dict(result)

    def create(self, opts: CreateFwRuleOpts) -> FirewallRule:
        """
        Create a firewall rule.

        Args:
            opts: Rule text ('FROM <target a> TO <target b> <action> <protocol> <port>') and enabled flag

        Returns:
            The created FirewallRule

        """
        result = self._client.post(
            make_path(API_FIREWALL_RULES),
            opts.to_dict(),
            expected_status=HTTP_CREATED,
            error=f"failed to create firewall rule: {opts.rule}",
        )
        return FirewallRule.from_dict(result)

    def update(self, fw_rule_id: str, opts: CreateFwRuleOpts) -> FirewallRule:
        result = self._client.post(
            make_path(API_FIREWALL_RULES, fw_rule_id),
            opts.to_dict(),
            error=f"failed to update firewall rule with id {fw_rule_id} to {opts.rule}",
        )
        return FirewallRule.from_dict(result)

    def enable(self, fw_rule_id: str) -> FirewallRule:
        result = self._client.post(
            make_path(API_FIREWALL_RULES, fw_rule_id, API_FIREWALL_RULES_ENABLE),
            error=f"failed to enable firewall rule with id {fw_rule_id}",
        )
        return FirewallRule.from_dict(result)

    def disable(self, fw_rule_id: str) -> FirewallRule:
        result = self._client.post(
            make_path(API_FIREWALL_RULES, fw_rule_id, API_FIREWALL_RULES_DISABLE),
            error=f"failed to disable firewall rule with id {fw_rule_id}",
        )
        return FirewallRule.from_dict(result)

    def delete(self, fw_rule_id: str) -> bool:
        self._client.delete(
            make_path(API_FIREWALL_RULES, fw_rule_id),
            error=f"failed to delete firewall rule with id {fw_rule_id}",
        )
        return True

    def list_machines(self, fw_rule_id: str) -> builtins.list[Machine]:
        """List the machines affected by a firewall rule."""
        result = self._client.get(
            make_path(API_FIREWALL_RULES, fw_rule_id, API_MACHINES),
            error=f"failed to get list of machines affected by firewall rule with id {fw_rule_id}",
        )
        return [Machine.from_dict(m) for m in result or []]


# =============================================================================
# Network & Fabric Operations
# =============================================================================


class NetworkOperations:
    """Operations for networks."""

    def __init__(self, client: APIClient):
        self._client = client

    def list(self) -> builtins.list[Network]:
        result = self._client.get(make_path(API_NETWORKS), error="failed to get list of networks")
        return [Network.from_dict(n) for n in result or []]

    def get(self, network_id: str) -> Network:
        result = self._client.get(
            make_path(API_NETWORKS, network_id),
            error=f"failed to get network with id {network_id}",
        )
        return Network.from_dict(result)


def _check_vlan_id(vlan_id: int) -> None:
    if not valid_vlan_id(vlan_id):
        raise ValidationError(f"VLAN id must be between 0 and 4095, got {vlan_id!r}")


class FabricOperations:
    """Operations for VLANs and networks on the default fabric."""

    def __init__(self, client: APIClient):
        self._client = client

    def list_vlans(self) -> builtins.list[FabricVLAN]:
        result = self._client.get(make_path(API_FABRIC_VLANS), error="failed to get list of fabric VLANs")
        return [FabricVLAN.from_dict(v) for v in result or []]

    def get_vlan(self, vlan_id: int) -> FabricVLAN:
        _check_vlan_id(vlan_id)
        result = self._client.get(
            make_path(API_FABRIC_VLANS, vlan_id),
            error=f"failed to get fabric VLAN with id {vlan_id}",
        )
        return FabricVLAN.from_dict(result)

    def create_vlan(self, vlan: FabricVLAN) -> FabricVLAN:
        _check_vlan_id(vlan.id)
        result = self._client.post(
            make_path(API_FABRIC_VLANS),
            vlan.to_dict(),
            expected_status=HTTP_CREATED,
            error=f"failed to create fabric VLAN: {vlan.id} - {vlan.name}",
        )
        return FabricVLAN.from_dict(result)

    def update_vlan(self, vlan: FabricVLAN) -> FabricVLAN:
        _check_vlan_id(vlan.id)
        result = self._client.put(
            make_path(API_FABRIC_VLANS, vlan.id),
            vlan.to_dict(),
            expected_status=HTTP_ACCEPTED,
            error=f"failed to update fabric VLAN with id {vlan.id} to {vlan.name} - {vlan.description}",
        )
        return FabricVLAN.from_dict(result)

    def delete_vlan(self, vlan_id: int) -> bool:
        _check_vlan_id(vlan_id)
        self._client.delete(
            make_path(API_FABRIC_VLANS, vlan_id),
            error=f"failed to delete fabric VLAN with id {vlan_id}",
        )
        return True

    def list_networks(self, vlan_id: int) -> builtins.list[FabricNetwork]:
        _check_vlan_id(vlan_id)
        result = self._client.get(
            make_path(API_FABRIC_VLANS, vlan_id, API_FABRIC_NETWORKS),
            error=f"failed to get list of networks on fabric {vlan_id}",
        )
        return [FabricNetwork.from_dict(n) for n in result or []]

    def get_network(self, vlan_id: int, network_id: str) -> FabricNetwork:
        _check_vlan_id(vlan_id)
        result = self._client.get(
            make_path(API_FABRIC_VLANS, vlan_id, API_FABRIC_NETWORKS, network_id),
            error=f"failed to get fabric network {network_id} on vlan {vlan_id}",
        )
        return FabricNetwork.from_dict(result)

    def create_network(self, vlan_id: int, opts: CreateFabricNetworkOpts) -> FabricNetwork:
        _check_vlan_id(vlan_id)
        result = self._client.post(
            make_path(API_FABRIC_VLANS, vlan_id, API_FABRIC_NETWORKS),
            opts.to_dict(),
            expected_status=HTTP_CREATED,
            error=f"failed to create fabric network {opts.name} on vlan {vlan_id}",
        )
        return FabricNetwork.from_dict(result)

    def delete_network(self, vlan_id: int, network_id: str) -> bool:
        _check_vlan_id(vlan_id)
        self._client.delete(
            make_path(API_FABRIC_VLANS, vlan_id, API_FABRIC_NETWORKS, network_id),
            error=f"failed to delete fabric network {network_id} on vlan {vlan_id}",
        )
        return True
