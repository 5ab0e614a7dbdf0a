"""Utility modules for the API."""

from .address import parse_address_to_stage
from .client_ip import get_client_ip, TRUST_PROXY

__all__ = [
    'parse_address_to_stage',
    'get_client_ip',
    'TRUST_PROXY',
]
