"""Sales bounded context: vehicle Orders and their Transaction Ledger.

Handles the order lifecycle (aggregate with an embedded timeline), the
linked ledger of deposit/balance/refund/fee/tax transactions, and the
maintenance sweeps (deposit expiry, refund dispatch) that keep both consistent.
"""

import structlog
from protean.domain import Domain

# Domain Composition Root
sales = Domain(name="sales")

logger = structlog.get_logger(__name__)
