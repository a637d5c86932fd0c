#!/usr/bin/env python3
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

print(
    f"[aegis] bridge={os.environ.get('AEGIS_BRIDGE_HOST', '127.0.0.1')}:{os.environ.get('AEGIS_BRIDGE_PORT', '5577')} | "
    f"page={os.environ.get('AEGIS_BRIDGE_PAGE_URL', '-')}",
    file=sys.stderr,
)

from aegis_bridge.main import main  # noqa: E402

if __name__ == "__main__":
    main()
