"""
Purchase receipt mail.

Receipts go out over SMTP on a daemon thread after the settlement
transaction has committed. A failed send is logged and dropped: the
buyer already has access, and the order page shows the same details.
"""

import logging
import smtplib
import threading
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from flask import current_app, render_template

logger = logging.getLogger(__name__)

RECEIPT_TEMPLATE = "emails/purchase_receipt.html"


def _deliver(app, msg):
    with app.app_context():
        cfg = app.config
        if not cfg.get("MAIL_USERNAME") or not cfg.get("MAIL_PASSWORD"):
            logger.warning(f"Receipt for {msg['To']} not sent: SMTP credentials missing")
            return

        try:
            with smtplib.SMTP(cfg["MAIL_SMTP_HOST"], cfg["MAIL_SMTP_PORT"], timeout=30) as smtp:
                smtp.starttls()
                smtp.login(cfg["MAIL_USERNAME"], cfg["MAIL_PASSWORD"])
                smtp.send_message(msg)
            logger.info(f"Receipt sent to {msg['To']}")
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send receipt to {msg['To']}: {e}")


def render_receipt(order, buyer, repo):
    """Build the MIME message for a settled order."""
    cfg = current_app.config
    sender = cfg.get("MAIL_FROM_ADDRESS") or cfg.get("MAIL_USERNAME") or ""

    html = render_template(
        RECEIPT_TEMPLATE,
        buyer_name=buyer.full_name,
        repo_name=repo.name,
        order_id=order.id,
        amount=f"{order.total_amount / 100:.2f}",
        currency=cfg.get("CHECKOUT_CURRENCY", "myr").upper(),
        repo_url=f"{cfg.get('APP_BASE_URL', '')}/repos/{repo.id}",
    )

    msg = MIMEMultipart("alternative")
    msg["Subject"] = f"Your CodeMarket receipt: {repo.name}"
    msg["From"] = f"{cfg.get('MAIL_FROM_NAME', 'CodeMarket')} <{sender}>"
    msg["To"] = buyer.email
    msg.attach(MIMEText(html, "html"))
    return msg


def send_purchase_receipt(order, buyer, repo):
    """Queue a receipt for `order` without blocking the request."""
    if not current_app.config.get("SEND_PURCHASE_RECEIPTS"):
        return

    msg = render_receipt(order, buyer, repo)
    app = current_app._get_current_object()
    threading.Thread(target=_deliver, args=(app, msg), daemon=True).start()
