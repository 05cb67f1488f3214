"""Invoices for placed orders."""

from dataclasses import dataclass

from shop.models import Order


@dataclass
class Invoice:
    """A rendered invoice."""
    number: str
    order: Order

    def render(self) -> str:
        return f"{self.number}: {self.order.total():.2f}"


def create_invoice(order: Order) -> Invoice:
    """Create the invoice for *order*."""
    return Invoice(number=f"INV-{order.id}", order=order)
