"""HTTP client factory for notifyrelay.

One ``httpx.AsyncClient`` is shared by the delivery worker and the webhook
health check so connections are pooled across deliveries.
"""

from __future__ import annotations

import logging
import os

import httpx
from dotenv import load_dotenv


def build_client(timeout_seconds: float = 10.0) -> httpx.AsyncClient:
    """Create the shared async HTTP client.

    Proxy settings and CA bundles are read from the environment
    (``HTTPS_PROXY``, ``SSL_CERT_FILE``), which python-dotenv fills from
    ``.env`` when present.
    """

    load_dotenv()

    user_agent = os.getenv("NOTIFYRELAY_USER_AGENT", "notifyrelay/0.1")
    timeout = httpx.Timeout(timeout_seconds, connect=5.0)

    logging.getLogger(__name__).info("Initializing HTTP client (timeout=%ss)", timeout_seconds)

    return httpx.AsyncClient(
        timeout=timeout,
        trust_env=True,
        headers={"User-Agent": user_agent},
    )
