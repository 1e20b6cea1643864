"""
Core layer - Resource types and HTTP client.

This layer provides:
- Typed dataclasses matching the CloudAPI JSON shapes
- Filters and request building
- Low-level HTTP client with request signing and error handling
"""

from sdc_cli.core.auth import Credentials
from sdc_cli.core.client import (
    APIClient,
    APIError,
    CLIError,
    HTTPTransport,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from sdc_cli.core.filter import Filter
from sdc_cli.core.request import Request, make_path
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
    MachineState,
    Network,
    Package,
    Snapshot,
)

__all__ = [
    "APIClient",
    "APIError",
    "CLIError",
    "CreateFabricNetworkOpts",
    "CreateFwRuleOpts",
    "CreateImageFromMachineOpts",
    "CreateKeyOpts",
    "CreateMachineOpts",
    "Credentials",
    "FabricNetwork",
    "FabricVLAN",
    "Filter",
    "FirewallRule",
    "HTTPTransport",
    "Image",
    "InvalidStateError",
    "Key",
    "Machine",
    "MachineState",
    "Network",
    "NotFoundError",
    "Package",
    "Request",
    "Snapshot",
    "ValidationError",
    "make_path",
]
