"""
tradeescrow runtime

Configuration, wiring and the signed call gateway around one EscrowLedger.
"""

from tradeescrow.runtime.config import EscrowConfig
from tradeescrow.runtime.context import RuntimeContext
from tradeescrow.runtime.gateway import CallRequest, EscrowGateway

__all__ = ["EscrowConfig", "RuntimeContext", "CallRequest", "EscrowGateway"]
