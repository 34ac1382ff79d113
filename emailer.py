import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.mime.base import MIMEBase
from email import encoders
from typing import List, Optional, Tuple

import structlog

logger = structlog.get_logger(__name__)

Attachment = Tuple[str, bytes, str]


class Mailer:
    def __init__(
        self,
        host: Optional[str],
        port: int = 587,
        user: Optional[str] = None,
        password: Optional[str] = None,
        sender: str = "noreply@example.org",
        tls: bool = True,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender
        self.tls = tls

    def send(self, to_addrs: List[str], subject: str, body: str, attachments: Optional[List[Attachment]] = None):
        if not self.host:
            raise RuntimeError("SMTP is not configured")

        msg = MIMEMultipart()
        msg["From"] = self.sender
        msg["To"] = ", ".join(to_addrs)
        msg["Subject"] = subject

        msg.attach(MIMEText(body, "plain", "utf-8"))

        for filename, data, mimetype in (attachments or []):
            main, sub = mimetype.split("/", 1)
            part = MIMEBase(main, sub)
            part.set_payload(data)
            encoders.encode_base64(part)
            part.add_header("Content-Disposition", f'attachment; filename="{filename}"')
            msg.attach(part)

        with smtplib.SMTP(self.host, self.port) as server:
            if self.tls:
                server.starttls()
            if self.user and self.password:
                server.login(self.user, self.password)
            server.sendmail(self.sender, to_addrs, msg.as_string())
        logger.info("mail_sent", to=to_addrs, subject=subject)


def verification_message(code: str) -> Tuple[str, str]:
    subject = "Your verification code"
    body = (
        f"Your verification code is {code}.\n\n"
        "It expires in 20 minutes. If you did not request it, you can ignore this e-mail."
    )
    return subject, body


def paid_invoice_message(invoice_number: str, organization_name: str, total: str) -> Tuple[str, str]:
    subject = f"Invoice {invoice_number} - paid"
    body = (
        f"Dear {organization_name},\n\n"
        f"Please find attached invoice {invoice_number} for {total}, marked as paid.\n\n"
        "Thank you."
    )
    return subject, body
