"""Storefront bounded context: Cart, Catalogue variants, Orders and Payments.

Checkout and payment reconciliation touch Cart, Order and Payment in the same
unit of work, so they share one domain. Stock counters live outside Protean in
the inventory ledger, where they can be updated with a single conditional
statement per variant.
"""

import structlog
from protean.domain import Domain

storefront = Domain(name="storefront")

logger = structlog.get_logger(__name__)
