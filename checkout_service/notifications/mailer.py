import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict, List, Optional

import structlog

from checkout_service.core.errors import NotificationError
from checkout_service.notifications.templates import render_order_confirmation

log = structlog.get_logger(__name__)


class SmtpMailer:
    def __init__(self, host: str, port: int, from_email: str, timeout: float = 10.0):
        self.host = host
        self.port = port
        self.from_email = from_email
        self.timeout = timeout

    def send_email(self, to: str, subject: str, body: str, html: Optional[str] = None):
        if html:
            msg = MIMEMultipart("alternative")
            msg.attach(MIMEText(body, "plain"))
            msg.attach(MIMEText(html, "html"))
        else:
            msg = MIMEText(body)
        msg["Subject"] = subject
        msg["From"] = self.from_email
        msg["To"] = to
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as s:
                s.sendmail(self.from_email, [to], msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(f"Failed to send email to {to}: {e}") from e
        log.info("email_sent", to=to, subject=subject)

    def send_order_confirmation(
        self,
        order: Dict[str, Any],
        items: List[Dict[str, Any]],
        to: str,
        customer_name: Optional[str] = None,
    ):
        subject, text, html = render_order_confirmation(order, items, customer_name)
        self.send_email(to, subject, text, html=html)
