"""Client address used as the rate-limit key.

Proxy headers are only honoured when both TRUST_PROXY and BEHIND_CLOUDFLARE
are "1"/"true"; a directly exposed API keys on the peer address.
"""

from __future__ import annotations

import os
import logging
from typing import Optional

from fastapi import Request

logger = logging.getLogger("api.client_ip")


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").lower() in ("1", "true")


TRUST_PROXY = _env_flag("TRUST_PROXY") and _env_flag("BEHIND_CLOUDFLARE")

if _env_flag("TRUST_PROXY") and not TRUST_PROXY:
    logger.warning("TRUST_PROXY set without BEHIND_CLOUDFLARE=1; proxy headers will be ignored.")

# Checked in order; X-Forwarded-For lists the original client first
PROXY_HEADERS = ("CF-Connecting-IP", "X-Forwarded-For")


def _proxy_address(request: Request) -> Optional[str]:
    for header in PROXY_HEADERS:
        value = request.headers.get(header, "")
        first = value.split(",")[0].strip()
        if first:
            return first
    return None


def get_client_ip(request: Request, trust_proxy: Optional[bool] = None) -> str:
    trusted = TRUST_PROXY if trust_proxy is None else trust_proxy
    if trusted:
        address = _proxy_address(request)
        if address:
            return address
    return request.client.host if request.client else "unknown"
