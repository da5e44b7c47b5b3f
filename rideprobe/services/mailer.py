import smtplib
from email.message import EmailMessage
from email.utils import make_msgid
from typing import Optional

from rideprobe.core.exceptions.exceptions import EmailDeliveryError, NetworkError
from rideprobe.utils.log import app_logger


class Mailer:
    """SMTP sender used by the email probes.

    - `verify` opens a session, upgrades to TLS and logs in, then closes it.
    - `send` delivers one HTML message and returns its Message-ID.
    Unreachable servers raise NetworkError, rejected logins or messages raise
    EmailDeliveryError.
    """

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        sender: Optional[str] = None,
        use_tls: bool = True,
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender or username
        self.use_tls = use_tls
        self.timeout = timeout

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    def _open(self, stage: str) -> smtplib.SMTP:
        try:
            server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        except OSError as e:
            app_logger.error("mailer.unreachable", address=self.address, stage=stage, error=str(e))
            raise NetworkError(self.address, str(e)) from e

        try:
            if self.use_tls:
                server.starttls()
            if self.username and self.password:
                server.login(self.username, self.password)
        except (smtplib.SMTPException, OSError) as e:
            server.close()
            app_logger.error("mailer.login_failed", address=self.address, stage=stage, error=str(e))
            raise EmailDeliveryError(stage, str(e)) from e
        return server

    def verify(self) -> None:
        server = self._open("verify")
        try:
            server.noop()
        except (smtplib.SMTPException, OSError) as e:
            raise EmailDeliveryError("verify", str(e)) from e
        finally:
            server.close()
        app_logger.info("mailer.verified", address=self.address, user=self.username)

    def send(self, to: str, subject: str, html: str, text: Optional[str] = None) -> str:
        if not self.sender:
            raise EmailDeliveryError("send", "no sender configured")

        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message["Message-ID"] = make_msgid(domain=self.sender.rpartition("@")[2])
        message.set_content(text or "This message requires an HTML capable client.")
        message.add_alternative(html, subtype="html")

        server = self._open("send")
        try:
            server.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            app_logger.error("mailer.send_failed", address=self.address, to=to, error=str(e))
            raise EmailDeliveryError("send", str(e)) from e
        finally:
            server.close()

        app_logger.info("mailer.sent", to=to, message_id=message["Message-ID"])
        return message["Message-ID"]
