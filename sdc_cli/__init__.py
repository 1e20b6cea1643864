"""
SDC CLI - Three-layer client for the SDC CloudAPI.

Layers:
- core: Resource types, request building, signing and the HTTP client
- sdk: High-level CloudAPIClient with one method per endpoint
- cli: Opinionated command-line interface

The localservices package holds an in-memory CloudAPI for tests.
"""

from sdc_cli.sdk import CloudAPIClient

__version__ = "0.1.0"
__all__ = ["CloudAPIClient"]
