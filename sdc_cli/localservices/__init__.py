"""
Local service doubles for testing without network access.

- FakeCloudAPI: in-memory CloudAPI with pre-call hooks
- FakeTransport: serves a FakeCloudAPI in-process to a CloudAPIClient
- FakeCloudAPIServer: serves a FakeCloudAPI over HTTP
"""

from sdc_cli.localservices.cloudapi import FakeCloudAPI
from sdc_cli.localservices.hooks import Hook, ServiceInstance
from sdc_cli.localservices.server import CloudAPIRouter, FakeCloudAPIServer, FakeTransport

__all__ = [
    "CloudAPIRouter",
    "FakeCloudAPI",
    "FakeCloudAPIServer",
    "FakeTransport",
    "Hook",
    "ServiceInstance",
]
