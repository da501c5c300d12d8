"""
Picks the ledger transport once, from configuration.
"""

import logging
from typing import Optional

from backend.app.core.config import settings
from backend.app.transport.base import LedgerTransport
from backend.app.transport.http import HttpLedgerTransport
from backend.app.transport.local import LocalLedgerTransport

logger = logging.getLogger("ledger")

TRANSPORTS = {
    "local": LocalLedgerTransport,
    "http": HttpLedgerTransport,
}


def build_ledger_transport(kind: Optional[str] = None, **options) -> LedgerTransport:
    """
    Build the transport named by `kind` (default: LEDGER_TRANSPORT).

    Extra keyword options go to the transport constructor, e.g.
    session_factory for "local" or base_url/client for "http".

    Raises:
        ValueError: unknown transport name
    """
    kind = (kind or settings.ledger_transport).strip().lower()
    transport_class = TRANSPORTS.get(kind)
    if transport_class is None:
        raise ValueError(f"Unknown ledger transport '{kind}', expected one of {sorted(TRANSPORTS)}")

    logger.info("Ledger transport selected", extra={"transport": kind})
    return transport_class(**options)
