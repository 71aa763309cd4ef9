import smtplib
from email.message import EmailMessage
from typing import Optional

from florist.services.order_status import status_label
from florist.services.pricing import format_price
from florist.utils.logging import get_logger

log = get_logger("mail")


class SmtpNotifier:
    def __init__(
        self,
        host: str,
        port: int,
        mail_from: str,
        admin_email: str,
        shop_name: str,
        user: str = "",
        password: str = "",
        use_tls: bool = True,
        timeout: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.mail_from = mail_from
        self.admin_email = admin_email
        self.shop_name = shop_name
        self.user = user
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def _send(self, to: str, subject: str, body: str) -> bool:
        msg = EmailMessage()
        msg["From"] = f"{self.shop_name} <{self.mail_from}>"
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(body)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                if self.use_tls:
                    smtp.starttls()
                if self.user:
                    smtp.login(self.user, self.password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            log.error("sending %r to %s failed: %s", subject, to, e)
            return False
        log.info("sent %r to %s", subject, to)
        return True

    @staticmethod
    def _lines(order) -> str:
        rows = []
        for line in order.lines:
            label = f"{line.name} ({line.variant_name})" if line.variant_name else line.name
            rows.append(f"  {line.quantity} x {label}  {format_price(line.unit_price_cents * line.quantity)}")
        return "\n".join(rows)

    def send_order_confirmation(self, order) -> bool:
        customer = order.customer_info or {}
        delivery = order.delivery_info or {}
        body = (
            f"Bonjour {customer.get('name', '')},\n\n"
            f"Merci pour votre commande {order.order_number}.\n\n"
            f"{self._lines(order)}\n\n"
            f"Total : {format_price(order.total_amount_cents)}\n"
            f"{'Livraison' if delivery.get('type') == 'delivery' else 'Retrait'} le {delivery.get('date', '')}\n\n"
            f"{self.shop_name}\n"
        )
        return self._send(customer.get("email", ""), f"Confirmation de commande {order.order_number}", body)

    def send_new_order_notification(self, order) -> bool:
        customer = order.customer_info or {}
        body = (
            f"Nouvelle commande {order.order_number}\n"
            f"Client : {customer.get('name', '')} <{customer.get('email', '')}> {customer.get('phone', '')}\n\n"
            f"{self._lines(order)}\n\n"
            f"Total : {format_price(order.total_amount_cents)}\n"
        )
        if order.is_gift and order.gift_info:
            body += f"Cadeau pour {order.gift_info.get('recipient_name', '')}\n"
        return self._send(self.admin_email, f"Nouvelle commande {order.order_number}", body)

    def send_order_status_email(
        self, order, new_status: str, note: Optional[str] = None, previous_status: Optional[str] = None
    ) -> bool:
        customer = order.customer_info or {}
        body = f"Bonjour {customer.get('name', '')},\n\n"
        if previous_status:
            body += (
                f"Votre commande {order.order_number} est passée de "
                f"« {status_label(previous_status)} » à « {status_label(new_status)} ».\n"
            )
        else:
            body += f"Votre commande {order.order_number} est maintenant « {status_label(new_status)} ».\n"
        if note:
            body += f"\n{note}\n"
        body += f"\n{self.shop_name}\n"
        return self._send(
            customer.get("email", ""),
            f"Commande {order.order_number} : {status_label(new_status)}",
            body,
        )

    def health_check(self) -> bool:
        return bool(self.host)
