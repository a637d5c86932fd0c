"""
Aegis bridge connector process.

Connects to the local bridge daemon over WebSocket and relays captures and
commands for the pages it hosts. Configuration comes from AEGIS_BRIDGE_*
environment variables (see config.py). For local runs a single page can be
served from an HTML file:

    AEGIS_BRIDGE_PAGE_HTML=chat.html AEGIS_BRIDGE_PAGE_URL=https://claude.ai/chat aegis-bridge
"""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path

from .config import BridgeConfig
from .service import BridgeService

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(message)s",
)
logger = logging.getLogger("aegis.bridge")

LOCAL_TAB_ID = "1"


def _open_local_page(service: BridgeService) -> None:
    html_path = (os.environ.get("AEGIS_BRIDGE_PAGE_HTML") or "").strip()
    url = (os.environ.get("AEGIS_BRIDGE_PAGE_URL") or "").strip()
    if not html_path or not url:
        return
    from .page.soup import SoupDocument

    html = Path(html_path).expanduser().read_text(encoding="utf-8", errors="replace")
    service.open_page(LOCAL_TAB_ID, SoupDocument(html, url=url))
    logger.info("serving %s as tab %s (%s)", html_path, LOCAL_TAB_ID, url)


def main() -> None:
    config = BridgeConfig.from_env()
    service = BridgeService(config)
    service.start()
    logger.info("bridge connector started (%s:%s)", config.host, config.port)
    try:
        _open_local_page(service)
        last = None
        while service.is_running():
            snapshot = service.indicator.snapshot()
            if snapshot != last:
                logger.info("status: %s", snapshot.get("text"))
                last = snapshot
            time.sleep(1.0)
    except KeyboardInterrupt:
        pass
    finally:
        service.stop()


if __name__ == "__main__":
    main()
