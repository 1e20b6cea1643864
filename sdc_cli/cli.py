"""
SDC CLI - Opinionated command-line interface.

This layer provides the user-facing CLI commands, using the SDK layer
for all operations. It handles:
- Argument parsing
- TTY detection for human vs machine output
- Pretty formatting for human output
- JSON output for piping/automation
"""

import argparse
import json
import os
import sys
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from loguru import logger

from sdc_cli.core.client import CLIError, ValidationError
from sdc_cli.core.filter import Filter
from sdc_cli.core.types import (
    CreateFabricNetworkOpts,
    CreateFwRuleOpts,
    CreateImageFromMachineOpts,
    CreateKeyOpts,
    CreateMachineOpts,
    FabricVLAN,
    Machine,
)
from sdc_cli.localservices.server import FakeCloudAPIServer
from sdc_cli.sdk import CloudAPIClient

DEFAULT_LOG_LEVEL = "WARNING"


def setup_logging(level: str | None = None) -> None:
    """Send log output to stderr at the given level (or SDC_LOG_LEVEL)."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=(level or os.environ.get("SDC_LOG_LEVEL", DEFAULT_LOG_LEVEL)).upper(),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )


# =============================================================================
# Output Helpers
# =============================================================================


def is_tty() -> bool:
    """Check if stdout is a TTY (human) or pipe (machine)."""
    return sys.stdout.isatty()


def json_output(data: Any, pretty: bool = False) -> None:
    """Print JSON output."""
    indent = 2 if pretty or is_tty() else None
    print(json.dumps(data, indent=indent, default=str))


def error_output(error: CLIError) -> None:
    """Print error and exit."""
    json_output(error.to_dict())
    sys.exit(1)


def success_output(data: Any) -> None:
    """Print success output."""
    json_output(data)


def table_output(
    headers: list[str],
    rows: list[list[str]],
    widths: list[int],
) -> None:
    """Print a formatted table for human output."""
    header_line = "  ".join(h.ljust(w) for h, w in zip(headers, widths))
    print(header_line)
    print("-" * len(header_line))

    for row in rows:
        print("  ".join(str(v)[:w].ljust(w) for v, w in zip(row, widths)))


def parse_pairs(pairs: list[str] | None) -> dict[str, str]:
    """Parse repeated KEY=VALUE arguments."""
    result: dict[str, str] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValidationError(f"Expected KEY=VALUE, got: {pair}")
        result[key] = value
    return result


def parse_filter(pairs: list[str] | None) -> Filter | None:
    """Build a Filter from repeated --filter KEY=VALUE arguments."""
    values = parse_pairs(pairs)
    return Filter(values) if values else None


def read_text_arg(value: str) -> str:
    """Read an argument value, from stdin for '-' or from a file for '@path'."""
    if value == "-":
        return sys.stdin.read().strip()
    if value.startswith("@"):
        return Path(value[1:]).expanduser().read_text().strip()
    return value


def machines_output(machines: list[Machine]) -> None:
    if is_tty():
        if not machines:
            print("No machines found.")
            return
        table_output(
            ["ID", "Name", "State", "Package", "Primary IP"],
            [[m.id, m.name, m.state, m.package, m.primary_ip] for m in machines],
            [36, 24, 12, 16, 15],
        )
    else:
        success_output({"data": [m.to_dict() for m in machines], "total_count": len(machines)})


# =============================================================================
# Keys
# =============================================================================


def cmd_keys_list(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """List keys on the account."""
    try:
        keys = client.keys.list()
        if is_tty():
            if not keys:
                print("No keys found.")
                return
            table_output(["Name", "Fingerprint"], [[k.name, k.fingerprint] for k in keys], [30, 50])
        else:
            success_output({"data": [k.to_dict() for k in keys]})
    except CLIError as e:
        error_output(e)


def cmd_keys_get(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """Get a key by name."""
    try:
        success_output(client.keys.get(args.name).to_dict())
    except CLIError as e:
        error_output(e)


def cmd_keys_add(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """Upload a public key."""
    try:
        key = client.keys.create(CreateKeyOpts(name=args.name, key=read_text_arg(args.key)))
        success_output(key.to_dict())
    except CLIError as e:
        error_output(e)


def cmd_keys_delete(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """Delete a key."""
    try:
        client.keys.delete(args.name)
        success_output({"success": True, "message": f"Key {args.name} deleted"})
    except CLIError as e:
        error_output(e)


# =============================================================================
# Packages & Images
# =============================================================================


def cmd_packages_list(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """List packages."""
    try:
        packages = client.packages.list(parse_filter(args.filter))
        if is_tty():
            if not packages:
                print("No packages found.")
                return
            table_output(
                ["ID", "Name", "Memory", "Disk", "vCPUs"],
                [[p.id, p.name, p.memory, p.disk, p.vcpus] for p in packages],
                [36, 24, 8, 8, 6],
            )
        else:
            success_output({"data": [p.to_dict() for p in packages]})
    except CLIError as e:
        error_output(e)


def cmd_packages_get(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """Get a package by id or name."""
    try:
        success_output(client.packages.get(args.package).to_dict())
    except CLIError as e:
        error_output(e)


def cmd_images_list(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """List images."""
    try:
        images = client.images.list(parse_filter(args.filter))
        if is_tty():
            if not images:
                print("No images found.")
                return
            table_output(
                ["ID", "Name", "Version", "OS", "Type"],
                [[i.id, i.name, i.version, i.os, i.type] for i in images],
                [36, 24, 10, 10, 16],
            )
        else:
            success_output({"data": [i.to_dict() for i in images]})
    except CLIError as e:
        error_output(e)


def cmd_images_get(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """Get an image by id."""
    try:
        success_output(client.images.get(args.image_id).to_dict())
    except CLIError as e:
        error_output(e)


def cmd_images_create(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """Create an image from a machine."""
    try:
        opts = CreateImageFromMachineOpts(
            machine=args.machine_id,
            name=args.name,
            version=args.version,
            description=args.description or "",
            tags=parse_pairs(args.tag),
        )
        success_output(client.images.create_from_machine(opts).to_dict())
    except CLIError as e:
        error_output(e)


def cmd_images_delete(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """Delete an image."""
    try:
        client.images.delete(args.image_id)
        success_output({"success": True, "message": f"Image {args.image_id} deleted"})
    except CLIError as e:
        error_output(e)


# =============================================================================
# Machines
# =============================================================================


def cmd_machines_list(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """List machines."""
    try:
        machines_output(client.machines.list(parse_filter(args.filter)))
    except CLIError as e:
        error_output(e)


def cmd_machines_count(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """Count machines."""
    try:
        success_output({"count": client.machines.count(parse_filter(args.filter))})
    except CLIError as e:
        error_output(e)


def cmd_machines_get(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """Get a machine by id."""
    try:
        success_output(client.machines.get(args.machine_id).to_dict())
    except CLIError as e:
        error_output(e)


def cmd_machines_create(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """Provision a machine."""
    try:
        opts = CreateMachineOpts(
            name=args.name or "",
            package=args.package,
            image=args.image,
            networks=args.network or [],
            metadata=parse_pairs(args.metadata),
            tags=parse_pairs(args.tag),
            firewall_enabled=args.firewall,
        )
        machine = client.machines.create(opts)
        if args.wait:
            machine = client.machines.wait_for_state(machine.id, "running")
        success_output(machine.to_dict())
    except CLIError as e:
        error_output(e)


def cmd_machines_action(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """Run a lifecycle action (start, stop, reboot, delete) on a machine."""
    action = getattr(client.machines, args.action)
    try:
        action(args.machine_id)
        success_output({"success": True, "message": f"Machine {args.machine_id}: {args.action} requested"})
    except CLIError as e:
        error_output(e)


def cmd_machines_resize(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """Resize a machine to a new package."""
    try:
        client.machines.resize(args.machine_id, args.package)
        success_output({"success": True, "message": f"Machine {args.machine_id} resizing to {args.package}"})
    except CLIError as e:
        error_output(e)


def cmd_machines_rename(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """Rename a machine."""
    try:
        client.machines.rename(args.machine_id, args.name)
        success_output({"success": True, "message": f"Machine {args.machine_id} renamed to {args.name}"})
    except CLIError as e:
        error_output(e)


def cmd_machines_wait(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """Wait for a machine to reach a state."""
    try:
        machine = client.machines.wait_for_state(args.machine_id, args.state, timeout=args.timeout)
        success_output(machine.to_dict())
    except CLIError as e:
        error_output(e)


def cmd_machines_metadata(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """Show, set or delete machine metadata."""
    try:
        if args.delete_all:
            client.machines.metadata.delete_all(args.machine_id)
            success_output({})
        elif args.delete:
            for key in args.delete:
                client.machines.metadata.delete(args.machine_id, key)
            success_output(client.machines.metadata.get(args.machine_id))
        elif args.set:
            success_output(client.machines.metadata.update(args.machine_id, parse_pairs(args.set)))
        else:
            success_output(client.machines.metadata.get(args.machine_id))
    except CLIError as e:
        error_output(e)


def cmd_machines_tags(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """Show, add, replace or delete machine tags."""
    try:
        if args.delete_all:
            client.machines.tags.delete_all(args.machine_id)
            success_output({})
        elif args.delete:
            for tag in args.delete:
                client.machines.tags.delete(args.machine_id, tag)
            success_output(client.machines.tags.list(args.machine_id))
        elif args.set and args.replace:
            success_output(client.machines.tags.replace(args.machine_id, parse_pairs(args.set)))
        elif args.set:
            success_output(client.machines.tags.add(args.machine_id, parse_pairs(args.set)))
        else:
            success_output(client.machines.tags.list(args.machine_id))
    except CLIError as e:
        error_output(e)


def cmd_snapshots_list(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """List snapshots of a machine."""
    try:
        snapshots = client.machines.snapshots.list(args.machine_id)
        if is_tty():
            if not snapshots:
                print("No snapshots found.")
                return
            table_output(
                ["Name", "State", "Created"],
                [[s.name, s.state, s.created] for s in snapshots],
                [30, 12, 26],
            )
        else:
            success_output({"data": [s.to_dict() for s in snapshots]})
    except CLIError as e:
        error_output(e)


def cmd_snapshots_create(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """Snapshot a machine."""
    try:
        success_output(client.machines.snapshots.create(args.machine_id, args.name).to_dict())
    except CLIError as e:
        error_output(e)


def cmd_snapshots_start(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """Start a machine from a snapshot."""
    try:
        client.machines.snapshots.start(args.machine_id, args.name)
        success_output({"success": True, "message": f"Machine {args.machine_id} starting from {args.name}"})
    except CLIError as e:
        error_output(e)


def cmd_snapshots_delete(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """Delete a snapshot."""
    try:
        client.machines.snapshots.delete(args.machine_id, args.name)
        success_output({"success": True, "message": f"Snapshot {args.name} deleted"})
    except CLIError as e:
        error_output(e)


def cmd_machines_firewall(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """Enable or disable a machine's firewall, or list the rules that apply to it."""
    try:
        if args.enable:
            client.machines.firewall.enable(args.machine_id)
        elif args.disable:
            client.machines.firewall.disable(args.machine_id)
        rules = client.machines.firewall.list_rules(args.machine_id)
        success_output({"data": [r.to_dict() for r in rules]})
    except CLIError as e:
        error_output(e)


# =============================================================================
# Firewall Rules
# =============================================================================


def cmd_fwrules_list(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """List firewall rules."""
    try:
        rules = client.firewall_rules.list()
        if is_tty():
            if not rules:
                print("No firewall rules found.")
                return
            table_output(
                ["ID", "Enabled", "Rule"],
                [[r.id, "yes" if r.enabled else "no", r.rule] for r in rules],
                [36, 7, 60],
            )
        else:
            success_output({"data": [r.to_dict() for r in rules]})
    except CLIError as e:
        error_output(e)


def cmd_fwrules_get(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """Get a firewall rule."""
    try:
        success_output(client.firewall_rules.get(args.rule_id).to_dict())
    except CLIError as e:
        error_output(e)


def cmd_fwrules_create(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """Create a firewall rule."""
    try:
        rule = client.firewall_rules.create(CreateFwRuleOpts(enabled=args.enabled, rule=args.rule))
        success_output(rule.to_dict())
    except CLIError as e:
        error_output(e)


def cmd_fwrules_update(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """Replace a firewall rule's text."""
    try:
        rule = client.firewall_rules.update(args.rule_id, CreateFwRuleOpts(enabled=args.enabled, rule=args.rule))
        success_output(rule.to_dict())
    except CLIError as e:
        error_output(e)


def cmd_fwrules_toggle(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """Enable or disable a firewall rule."""
    try:
        if args.toggle == "enable":
            rule = client.firewall_rules.enable(args.rule_id)
        else:
            rule = client.firewall_rules.disable(args.rule_id)
        success_output(rule.to_dict())
    except CLIError as e:
        error_output(e)


def cmd_fwrules_delete(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """Delete a firewall rule."""
    try:
        client.firewall_rules.delete(args.rule_id)
        success_output({"success": True, "message": f"Firewall rule {args.rule_id} deleted"})
    except CLIError as e:
        error_output(e)


def cmd_fwrules_machines(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """List machines affected by a firewall rule."""
    try:
        machines_output(client.firewall_rules.list_machines(args.rule_id))
    except CLIError as e:
        error_output(e)


# =============================================================================
# Networks & Fabrics
# =============================================================================


def cmd_networks_list(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """List networks."""
    try:
        networks = client.networks.list()
        if is_tty():
            if not networks:
                print("No networks found.")
                return
            table_output(
                ["ID", "Name", "Public", "Fabric"],
                [[n.id, n.name, "yes" if n.public else "no", "yes" if n.fabric else "no"] for n in networks],
                [36, 30, 6, 6],
            )
        else:
            success_output({"data": [n.to_dict() for n in networks]})
    except CLIError as e:
        error_output(e)


def cmd_networks_get(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """Get a network."""
    try:
        success_output(client.networks.get(args.network_id).to_dict())
    except CLIError as e:
        error_output(e)


def cmd_vlans_list(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """List fabric VLANs."""
    try:
        vlans = client.fabrics.list_vlans()
        if is_tty():
            if not vlans:
                print("No VLANs found.")
                return
            table_output(
                ["VLAN", "Name", "Description"],
                [[v.id, v.name, v.description] for v in vlans],
                [6, 30, 40],
            )
        else:
            success_output({"data": [v.to_dict() for v in vlans]})
    except CLIError as e:
        error_output(e)


def cmd_vlans_get(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """Get a fabric VLAN."""
    try:
        success_output(client.fabrics.get_vlan(args.vlan_id).to_dict())
    except CLIError as e:
        error_output(e)


def cmd_vlans_create(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """Create a fabric VLAN."""
    try:
        vlan = FabricVLAN(id=args.vlan_id, name=args.name, description=args.description or "")
        success_output(client.fabrics.create_vlan(vlan).to_dict())
    except CLIError as e:
        error_output(e)


def cmd_vlans_update(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """Update a fabric VLAN's name or description."""
    try:
        vlan = FabricVLAN(id=args.vlan_id, name=args.name or "", description=args.description or "")
        success_output(client.fabrics.update_vlan(vlan).to_dict())
    except CLIError as e:
        error_output(e)


def cmd_vlans_delete(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """Delete a fabric VLAN."""
    try:
        client.fabrics.delete_vlan(args.vlan_id)
        success_output({"success": True, "message": f"VLAN {args.vlan_id} deleted"})
    except CLIError as e:
        error_output(e)


def cmd_vlans_networks(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """List networks on a fabric VLAN."""
    try:
        networks = client.fabrics.list_networks(args.vlan_id)
        success_output({"data": [n.to_dict() for n in networks]})
    except CLIError as e:
        error_output(e)


def cmd_vlans_create_network(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """Create a network on a fabric VLAN."""
    try:
        opts = CreateFabricNetworkOpts(
            name=args.name,
            description=args.description or "",
            subnet=args.subnet,
            provision_start_ip=args.start_ip,
            provision_end_ip=args.end_ip,
            gateway=args.gateway or "",
            resolvers=args.resolver or [],
            internet_nat=args.internet_nat,
        )
        success_output(client.fabrics.create_network(args.vlan_id, opts).to_dict())
    except CLIError as e:
        error_output(e)


def cmd_vlans_delete_network(client: CloudAPIClient, args: argparse.Namespace) -> None:
    """Delete a network from a fabric VLAN."""
    try:
        client.fabrics.delete_network(args.vlan_id, args.network_id)
        success_output({"success": True, "message": f"Network {args.network_id} deleted"})
    except CLIError as e:
        error_output(e)


# =============================================================================
# Local fake
# =============================================================================


def cmd_fake_server(_client: CloudAPIClient | None, args: argparse.Namespace) -> None:
    """Serve an in-memory CloudAPI over HTTP until interrupted."""
    server = FakeCloudAPIServer(host=args.host, port=args.port)
    print(f"Fake CloudAPI listening on {server.url} (Ctrl-C to stop)", file=sys.stderr)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()


# =============================================================================
# Parser
# =============================================================================


def _add_filter_arg(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--filter",
        "-f",
        action="append",
        metavar="KEY=VALUE",
        help="Filter results (repeatable, all must match)",
    )


def create_parser() -> argparse.ArgumentParser:  # noqa: PLR0915
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="sdc",
        description="SDC CLI - Command-line interface for the SDC CloudAPI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Output Modes:
  TTY (human):  Pretty tables
  Pipe:         Full JSON

Examples:
  sdc packages list -f memory=1024
  sdc machines create --package Small --image ubuntu12.04 --tag role=db --wait
  sdc machines list -f tags.role=db | jq '.data[].id'
  sdc fwrules create "FROM any TO vm <id> ALLOW tcp PORT 22" --enabled
  sdc fake-server --port 8080
""",
    )
    parser.add_argument("--url", "-u", help="CloudAPI endpoint (overrides SDC_URL)")
    parser.add_argument("--log-level", help="Log level (overrides SDC_LOG_LEVEL)")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # ========== Keys ==========
    keys = subparsers.add_parser("keys", help="Manage SSH keys")
    keys.set_defaults(func=lambda _c, _a: keys.print_help())
    keys_sub = keys.add_subparsers(dest="subcommand")

    k_list = keys_sub.add_parser("list", help="List keys")
    k_list.set_defaults(func=cmd_keys_list)

    k_get = keys_sub.add_parser("get", help="Get key details")
    k_get.add_argument("name", help="Key name")
    k_get.set_defaults(func=cmd_keys_get)

    k_add = keys_sub.add_parser("add", help="Upload a public key")
    k_add.add_argument("name", help="Key name")
    k_add.add_argument("key", help="Public key text, @file or - for stdin")
    k_add.set_defaults(func=cmd_keys_add)

    k_delete = keys_sub.add_parser("delete", help="Delete a key")
    k_delete.add_argument("name", help="Key name")
    k_delete.set_defaults(func=cmd_keys_delete)

    # ========== Packages ==========
    packages = subparsers.add_parser("packages", help="List machine packages")
    packages.set_defaults(func=lambda _c, _a: packages.print_help())
    packages_sub = packages.add_subparsers(dest="subcommand")

    p_list = packages_sub.add_parser("list", help="List packages")
    _add_filter_arg(p_list)
    p_list.set_defaults(func=cmd_packages_list)

    p_get = packages_sub.add_parser("get", help="Get package details")
    p_get.add_argument("package", help="Package id or name")
    p_get.set_defaults(func=cmd_packages_get)

    # ========== Images ==========
    images = subparsers.add_parser("images", help="Manage images")
    images.set_defaults(func=lambda _c, _a: images.print_help())
    images_sub = images.add_subparsers(dest="subcommand")

    i_list = images_sub.add_parser("list", help="List images")
    _add_filter_arg(i_list)
    i_list.set_defaults(func=cmd_images_list)

    i_get = images_sub.add_parser("get", help="Get image details")
    i_get.add_argument("image_id", help="Image ID")
    i_get.set_defaults(func=cmd_images_get)

    i_create = images_sub.add_parser("create", help="Create an image from a machine")
    i_create.add_argument("machine_id", help="Source machine ID")
    i_create.add_argument("name", help="Image name")
    i_create.add_argument("version", help="Image version")
    i_create.add_argument("--description", "-d", help="Image description")
    i_create.add_argument("--tag", "-t", action="append", metavar="KEY=VALUE", help="Image tag (repeatable)")
    i_create.set_defaults(func=cmd_images_create)

    i_delete = images_sub.add_parser("delete", help="Delete an image")
    i_delete.add_argument("image_id", help="Image ID")
    i_delete.set_defaults(func=cmd_images_delete)

    # ========== Machines ==========
    machines = subparsers.add_parser("machines", help="Manage machines")
    machines.set_defaults(func=lambda _c, _a: machines.print_help())
    machines_sub = machines.add_subparsers(dest="subcommand")

    m_list = machines_sub.add_parser("list", help="List machines")
    _add_filter_arg(m_list)
    m_list.set_defaults(func=cmd_machines_list)

    m_count = machines_sub.add_parser("count", help="Count machines")
    _add_filter_arg(m_count)
    m_count.set_defaults(func=cmd_machines_count)

    m_get = machines_sub.add_parser("get", help="Get machine details")
    m_get.add_argument("machine_id", help="Machine ID")
    m_get.set_defaults(func=cmd_machines_get)

    m_create = machines_sub.add_parser("create", help="Provision a machine")
    m_create.add_argument("--package", "-p", required=True, help="Package id or name")
    m_create.add_argument("--image", "-i", required=True, help="Image id or name")
    m_create.add_argument("--name", "-n", help="Machine name")
    m_create.add_argument("--network", action="append", help="Network ID (repeatable)")
    m_create.add_argument("--metadata", "-m", action="append", metavar="KEY=VALUE", help="Metadata (repeatable)")
    m_create.add_argument("--tag", "-t", action="append", metavar="KEY=VALUE", help="Tag (repeatable)")
    m_create.add_argument("--firewall", action="store_true", help="Enable the machine firewall")
    m_create.add_argument("--wait", action="store_true", help="Wait until the machine is running")
    m_create.set_defaults(func=cmd_machines_create)

    for action, help_text in (
        ("start", "Start a stopped machine"),
        ("stop", "Stop a running machine"),
        ("reboot", "Reboot a machine"),
        ("delete", "Delete a stopped machine"),
    ):
        m_action = machines_sub.add_parser(action, help=help_text)
        m_action.add_argument("machine_id", help="Machine ID")
        m_action.set_defaults(func=cmd_machines_action, action=action)

    m_resize = machines_sub.add_parser("resize", help="Resize a machine")
    m_resize.add_argument("machine_id", help="Machine ID")
    m_resize.add_argument("package", help="New package id or name")
    m_resize.set_defaults(func=cmd_machines_resize)

    m_rename = machines_sub.add_parser("rename", help="Rename a machine")
    m_rename.add_argument("machine_id", help="Machine ID")
    m_rename.add_argument("name", help="New name")
    m_rename.set_defaults(func=cmd_machines_rename)

    m_wait = machines_sub.add_parser("wait", help="Wait for a machine state")
    m_wait.add_argument("machine_id", help="Machine ID")
    m_wait.add_argument("state", help="Target state, e.g. running or stopped")
    m_wait.add_argument("--timeout", type=float, default=300.0, help="Seconds to wait")
    m_wait.set_defaults(func=cmd_machines_wait)

    m_meta = machines_sub.add_parser("metadata", help="Show or change machine metadata")
    m_meta.add_argument("machine_id", help="Machine ID")
    m_meta.add_argument("--set", "-s", action="append", metavar="KEY=VALUE", help="Set a key (repeatable)")
    m_meta.add_argument("--delete", "-d", action="append", metavar="KEY", help="Delete a key (repeatable)")
    m_meta.add_argument("--delete-all", action="store_true", help="Delete every key")
    m_meta.set_defaults(func=cmd_machines_metadata)

    m_tags = machines_sub.add_parser("tags", help="Show or change machine tags")
    m_tags.add_argument("machine_id", help="Machine ID")
    m_tags.add_argument("--set", "-s", action="append", metavar="KEY=VALUE", help="Add a tag (repeatable)")
    m_tags.add_argument("--replace", action="store_true", help="Replace all tags with --set values")
    m_tags.add_argument("--delete", "-d", action="append", metavar="TAG", help="Delete a tag (repeatable)")
    m_tags.add_argument("--delete-all", action="store_true", help="Delete every tag")
    m_tags.set_defaults(func=cmd_machines_tags)

    m_fw = machines_sub.add_parser("firewall", help="Show or toggle a machine's firewall")
    m_fw.add_argument("machine_id", help="Machine ID")
    fw_toggle = m_fw.add_mutually_exclusive_group()
    fw_toggle.add_argument("--enable", action="store_true", help="Enable the firewall")
    fw_toggle.add_argument("--disable", action="store_true", help="Disable the firewall")
    m_fw.set_defaults(func=cmd_machines_firewall)

    # ========== Snapshots ==========
    snapshots = subparsers.add_parser("snapshots", help="Manage machine snapshots")
    snapshots.set_defaults(func=lambda _c, _a: snapshots.print_help())
    snapshots_sub = snapshots.add_subparsers(dest="subcommand")

    s_list = snapshots_sub.add_parser("list", help="List snapshots")
    s_list.add_argument("machine_id", help="Machine ID")
    s_list.set_defaults(func=cmd_snapshots_list)

    for name, func, help_text in (
        ("create", cmd_snapshots_create, "Snapshot a machine"),
        ("start", cmd_snapshots_start, "Start a machine from a snapshot"),
        ("delete", cmd_snapshots_delete, "Delete a snapshot"),
    ):
        s_cmd = snapshots_sub.add_parser(name, help=help_text)
        s_cmd.add_argument("machine_id", help="Machine ID")
        s_cmd.add_argument("name", help="Snapshot name")
        s_cmd.set_defaults(func=func)

    # ========== Firewall rules ==========
    fwrules = subparsers.add_parser("fwrules", help="Manage firewall rules")
    fwrules.set_defaults(func=lambda _c, _a: fwrules.print_help())
    fwrules_sub = fwrules.add_subparsers(dest="subcommand")

    f_list = fwrules_sub.add_parser("list", help="List firewall rules")
    f_list.set_defaults(func=cmd_fwrules_list)

    f_get = fwrules_sub.add_parser("get", help="Get a firewall rule")
    f_get.add_argument("rule_id", help="Rule ID")
    f_get.set_defaults(func=cmd_fwrules_get)

    f_create = fwrules_sub.add_parser("create", help="Create a firewall rule")
    f_create.add_argument("rule", help="Rule text, e.g. 'FROM any TO vm <id> ALLOW tcp PORT 22'")
    f_create.add_argument("--enabled", action="store_true", help="Enable the rule")
    f_create.set_defaults(func=cmd_fwrules_create)

    f_update = fwrules_sub.add_parser("update", help="Replace a firewall rule")
    f_update.add_argument("rule_id", help="Rule ID")
    f_update.add_argument("rule", help="New rule text")
    f_update.add_argument("--enabled", action="store_true", help="Enable the rule")
    f_update.set_defaults(func=cmd_fwrules_update)

    for toggle in ("enable", "disable"):
        f_toggle = fwrules_sub.add_parser(toggle, help=f"{toggle.capitalize()} a firewall rule")
        f_toggle.add_argument("rule_id", help="Rule ID")
        f_toggle.set_defaults(func=cmd_fwrules_toggle, toggle=toggle)

    f_delete = fwrules_sub.add_parser("delete", help="Delete a firewall rule")
    f_delete.add_argument("rule_id", help="Rule ID")
    f_delete.set_defaults(func=cmd_fwrules_delete)

    f_machines = fwrules_sub.add_parser("machines", help="List machines affected by a rule")
    f_machines.add_argument("rule_id", help="Rule ID")
    f_machines.set_defaults(func=cmd_fwrules_machines)

    # ========== Networks ==========
    networks = subparsers.add_parser("networks", help="List networks")
    networks.set_defaults(func=lambda _c, _a: networks.print_help())
    networks_sub = networks.add_subparsers(dest="subcommand")

    n_list = networks_sub.add_parser("list", help="List networks")
    n_list.set_defaults(func=cmd_networks_list)

    n_get = networks_sub.add_parser("get", help="Get network details")
    n_get.add_argument("network_id", help="Network ID")
    n_get.set_defaults(func=cmd_networks_get)

    # ========== Fabric VLANs ==========
    vlans = subparsers.add_parser("vlans", help="Manage fabric VLANs and their networks")
    vlans.set_defaults(func=lambda _c, _a: vlans.print_help())
    vlans_sub = vlans.add_subparsers(dest="subcommand")

    v_list = vlans_sub.add_parser("list", help="List VLANs")
    v_list.set_defaults(func=cmd_vlans_list)

    v_get = vlans_sub.add_parser("get", help="Get VLAN details")
    v_get.add_argument("vlan_id", type=int, help="VLAN ID (0-4095)")
    v_get.set_defaults(func=cmd_vlans_get)

    v_create = vlans_sub.add_parser("create", help="Create a VLAN")
    v_create.add_argument("vlan_id", type=int, help="VLAN ID (0-4095)")
    v_create.add_argument("name", help="VLAN name")
    v_create.add_argument("--description", "-d", help="VLAN description")
    v_create.set_defaults(func=cmd_vlans_create)

    v_update = vlans_sub.add_parser("update", help="Update a VLAN")
    v_update.add_argument("vlan_id", type=int, help="VLAN ID (0-4095)")
    v_update.add_argument("--name", "-n", help="New name")
    v_update.add_argument("--description", "-d", help="New description")
    v_update.set_defaults(func=cmd_vlans_update)

    v_delete = vlans_sub.add_parser("delete", help="Delete a VLAN")
    v_delete.add_argument("vlan_id", type=int, help="VLAN ID (0-4095)")
    v_delete.set_defaults(func=cmd_vlans_delete)

    v_networks = vlans_sub.add_parser("networks", help="List networks on a VLAN")
    v_networks.add_argument("vlan_id", type=int, help="VLAN ID (0-4095)")
    v_networks.set_defaults(func=cmd_vlans_networks)

    v_create_net = vlans_sub.add_parser("create-network", help="Create a network on a VLAN")
    v_create_net.add_argument("vlan_id", type=int, help="VLAN ID (0-4095)")
    v_create_net.add_argument("name", help="Network name")
    v_create_net.add_argument("subnet", help="Subnet in CIDR notation")
    v_create_net.add_argument("start_ip", help="First provisionable IP")
    v_create_net.add_argument("end_ip", help="Last provisionable IP")
    v_create_net.add_argument("--gateway", "-g", help="Gateway IP")
    v_create_net.add_argument("--resolver", "-r", action="append", help="DNS resolver (repeatable)")
    v_create_net.add_argument("--description", "-d", help="Network description")
    v_create_net.add_argument("--internet-nat", action="store_true", help="Provision an internet NAT")
    v_create_net.set_defaults(func=cmd_vlans_create_network)

    v_delete_net = vlans_sub.add_parser("delete-network", help="Delete a network from a VLAN")
    v_delete_net.add_argument("vlan_id", type=int, help="VLAN ID (0-4095)")
    v_delete_net.add_argument("network_id", help="Network ID")
    v_delete_net.set_defaults(func=cmd_vlans_delete_network)

    # ========== Fake server ==========
    fake = subparsers.add_parser("fake-server", help="Serve an in-memory CloudAPI for local testing")
    fake.add_argument("--host", default="127.0.0.1", help="Bind address")
    fake.add_argument("--port", type=int, default=8080, help="Port (0 picks a free one)")
    fake.set_defaults(func=cmd_fake_server, local=True)

    return parser


def main(argv: list[str] | None = None, client: CloudAPIClient | None = None) -> None:
    """Main CLI entry point."""
    load_dotenv()
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(0)

    setup_logging(args.log_level)

    if getattr(args, "local", False):
        args.func(None, args)
        return

    if client is None:
        try:
            client = CloudAPIClient(base_url=args.url)
        except CLIError as e:
            error_output(e)

    # Run command (all subparsers have default funcs that print help)
    args.func(client, args)


if __name__ == "__main__":
    main()
