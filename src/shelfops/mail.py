# shelfops/mail.py
# Outgoing mail: SMTP when configured, otherwise written to the log

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from typing import Any, Callable, Mapping, Optional

logger = logging.getLogger(__name__)

# Renders a template name and context to an HTML body
Renderer = Callable[[str, Mapping[str, Any]], str]


class Mailer:
    """
    Sends templated mail.

    `renderer` turns a template name plus context into the message body. In
    the Flask app this is `flask.render_template`.
    """

    def __init__(
        self,
        renderer: Renderer,
        from_address: str,
        host: str = "",
        port: int = 587,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
    ) -> None:
        self.renderer = renderer
        self.from_address = from_address
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls

    @classmethod
    def from_config(cls, config: Mapping[str, Any], renderer: Renderer) -> "Mailer":
        return cls(
            renderer=renderer,
            from_address=config.get("MAIL_FROM", ""),
            host=config.get("MAIL_HOST", ""),
            port=int(config.get("MAIL_PORT", 587)),
            username=config.get("MAIL_USERNAME", ""),
            password=config.get("MAIL_PASSWORD", ""),
            use_tls=bool(config.get("MAIL_USE_TLS", True)),
        )

    def build_message(self, template: str, context: Mapping[str, Any], to: str, subject: str) -> EmailMessage:
        body = self.renderer(template, context)
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self.from_address
        message["To"] = to
        message.set_content("This message requires an HTML capable mail client.")
        message.add_alternative(body, subtype="html")
        return message

    def send(self, template: str, context: Mapping[str, Any], to: str, subject: str) -> Optional[EmailMessage]:
        message = self.build_message(template, context, to, subject)

        if not self.host:
            logger.info("Mail to %s (%s) not sent, no MAIL_HOST configured:\n%s", to, subject, message)
            return message

        with smtplib.SMTP(self.host, self.port, timeout=30) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password)
            smtp.send_message(message)
        logger.info("Mail sent to %s: %s", to, subject)
        return message
