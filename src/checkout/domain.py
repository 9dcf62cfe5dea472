"""Checkout bounded context — reservation, pricing and settlement.

Turns a cart into a time-boxed, priced reservation (the Order Intent),
backs every line with an inventory lock, and converts a paid intent into a
durable Order exactly once.
"""

from protean.domain import Domain

from checkout.utils.logging import configure_logging, get_logger

# Configure logging for the application
configure_logging()

logger = get_logger(__name__)

# Domain Composition Root
checkout = Domain(name="checkout")
