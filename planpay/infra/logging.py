import json
import os
import sys
import time
from typing import Any, Dict


def _enabled() -> bool:
    return os.getenv("PLANPAY_LOG_EVENTS", "1").strip() != "0"


def log_event(event: str, **fields: Any) -> None:
    """
    Reason:
    - print() becomes chaos at scale; structured logs stay usable.
    Benefit:
    - You can filter by run_id, step, tool, tx_hash, reason, etc.
    """
    if not _enabled():
        return
    payload: Dict[str, Any] = {
        "ts": time.time(),
        "event": event,
        **fields,
    }
    # Decimal prices and web3 HexBytes are not JSON-native
    sys.stdout.write(json.dumps(payload, ensure_ascii=False, default=str) + "\n")
    sys.stdout.flush()
