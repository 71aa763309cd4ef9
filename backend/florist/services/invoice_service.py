from datetime import datetime, timezone
from html import escape
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from florist.config import settings
from florist.errors import InvoiceNotAvailable, OrderAccessDenied, OrderNotFound
from florist.models.invoice import Invoice
from florist.models.order import Order
from florist.repositories.order_repo import OrderRepository
from florist.services.order_status import LIVREE
from florist.services.pricing import format_price
from florist.utils.logging import get_logger

log = get_logger("invoice")


def vat_included(total_cents: int, rate_percent: int) -> int:
    """VAT share of a VAT-inclusive amount, rounded to the cent."""
    return round(total_cents * rate_percent / (100 + rate_percent))


def invoice_snapshot(order: Order) -> dict:
    return {
        "order_number": order.order_number,
        "order_date": order.created_at.isoformat() if order.created_at else None,
        "customer": dict(order.customer_info or {}),
        "delivery": dict(order.delivery_info or {}),
        "lines": [
            {
                "name": l.name,
                "variant_name": l.variant_name,
                "quantity": l.quantity,
                "unit_price_cents": l.unit_price_cents,
                "line_total_cents": l.unit_price_cents * l.quantity,
            }
            for l in order.lines
        ],
        "payment": {
            "method": order.payment_method,
            "stripe_payment_intent_id": order.stripe_payment_intent_id,
        },
        "vat_rate_percent": settings.VAT_RATE_PERCENT,
    }


class InvoiceService:
    def __init__(self, db: Session):
        self.db = db
        self.orders = OrderRepository(db)

    def _load_order(self, order_id: int) -> Order:
        order = self.orders.get(order_id)
        if order is None:
            raise OrderNotFound("Order not found")
        return order

    def for_customer(self, order_id: int, user_id: str) -> Invoice:
        order = self._load_order(order_id)
        if order.user_id != user_id:
            log.warning("user %s asked for the invoice of order %s", user_id, order.order_number)
            raise OrderAccessDenied("Access to this order is not allowed")
        return self.get_or_create(order)

    def for_admin(self, order_id: int) -> Invoice:
        return self.get_or_create(self._load_order(order_id))

    def get_or_create(self, order: Order) -> Invoice:
        """
        Issue the order's invoice on first request and return the stored one
        afterwards. Only delivered orders are invoiced.
        """
        if order.status != LIVREE:
            raise InvoiceNotAvailable(
                "Invoices are only available for delivered orders",
                details={"status": order.status},
            )
        existing = self._find(order.id)
        if existing is not None:
            return existing

        invoice = Invoice(
            order_id=order.id,
            invoice_no=f"{settings.INVOICE_PREFIX}-{order.order_number}",
            total_cents=order.total_amount_cents,
            tax_cents=vat_included(order.total_amount_cents, settings.VAT_RATE_PERCENT),
            created_at=datetime.now(timezone.utc),
            data=invoice_snapshot(order),
        )
        try:
            self.db.add(invoice)
            self.db.commit()
        except IntegrityError:
            # a concurrent request issued it first
            self.db.rollback()
            existing = self._find(order.id)
            if existing is None:
                raise
            return existing
        log.info("issued invoice %s for order %s", invoice.invoice_no, order.order_number)
        return invoice

    def _find(self, order_id: int) -> Optional[Invoice]:
        return self.db.query(Invoice).filter(Invoice.order_id == order_id).first()


def render_invoice_html(invoice: Invoice, shop_name: str = None) -> str:
    shop_name = escape(shop_name or settings.SHOP_NAME)
    data = invoice.data or {}
    customer = data.get("customer") or {}
    delivery = data.get("delivery") or {}
    issued = invoice.created_at.strftime("%d/%m/%Y") if invoice.created_at else ""

    rows = []
    for line in data.get("lines", []):
        name = escape(line["name"])
        if line.get("variant_name"):
            name += f" ({escape(line['variant_name'])})"
        rows.append(
            f"<tr><td>{name}</td><td>{line['quantity']}</td>"
            f"<td>{format_price(line['unit_price_cents'])}</td>"
            f"<td>{format_price(line['line_total_cents'])}</td></tr>"
        )

    if delivery.get("type") == "delivery" and delivery.get("address"):
        address = delivery["address"]
        where = (
            f"Livraison à domicile<br>{escape(address.get('street', ''))}<br>"
            f"{escape(address.get('zip_code', ''))} {escape(address.get('city', ''))}"
        )
    else:
        where = "Retrait en magasin"

    rate = data.get("vat_rate_percent", settings.VAT_RATE_PERCENT)
    invoice_no = escape(invoice.invoice_no)
    order_number = escape(data.get("order_number", ""))
    billed = "<br>".join(escape(customer.get(k, "")) for k in ("name", "email", "phone"))
    delivery_date = escape(str(delivery.get("date", "")))
    body_rows = "\n".join(rows)
    return f"""<!DOCTYPE html>
<html lang="fr">
<head><meta charset="UTF-8"><title>Facture {invoice_no}</title></head>
<body>
<h1>{shop_name}</h1>
<p>Facture <strong>{invoice_no}</strong> du {issued}</p>
<p>Commande {order_number}</p>
<h2>Facturation</h2>
<p>{billed}</p>
<h2>Livraison</h2>
<p>{where}<br>Date : {delivery_date}</p>
<table>
<thead><tr><th>Article</th><th>Quantité</th><th>Prix unitaire</th><th>Total</th></tr></thead>
<tbody>
{body_rows}
</tbody>
</table>
<p>TVA incluse ({rate}%) : {format_price(invoice.tax_cents)}</p>
<p><strong>TOTAL PAYÉ : {format_price(invoice.total_cents)}</strong></p>
</body>
</html>
"""
