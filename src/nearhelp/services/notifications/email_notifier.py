"""
SMTP email alerts

Sends incident alerts to registered users. smtplib is blocking, so each
send runs in the default executor.
"""

import asyncio
import logging
import smtplib
import ssl
from email.mime.text import MIMEText
from typing import Any, Dict, List, Optional

from ...core.errors import UnavailableError, ValidationError
from ...models.incident import Incident


class EmailNotifier:
    """
    Outbound email over SMTP (STARTTLS, or implicit TLS on port 465)
    """

    def __init__(self, config: Dict[str, Any]):
        self.logger = logging.getLogger(__name__)
        self.enabled = bool(config.get('enabled', False))
        self.smtp_host = config.get('smtp_host', '')
        self.smtp_port = int(config.get('smtp_port', 587))
        self.smtp_user = config.get('smtp_user', '')
        self.smtp_password = config.get('smtp_password', '')
        self.mail_from = config.get('mail_from', '')
        self.use_tls = bool(config.get('use_tls', True))
        self.timeout = config.get('timeout', 30)

        self.emails_sent = 0
        self.send_failures = 0

    def is_configured(self) -> bool:
        return all([self.smtp_host, self.smtp_user, self.smtp_password, self.mail_from])

    async def send(self, recipients: List[str], subject: str, text: str) -> bool:
        """
        Send one message to all ``recipients`` as blind copies

        Returns:
            False when alerts are disabled or nobody is addressed, True once sent

        Raises:
            ValidationError: subject or body missing
            UnavailableError: alerts enabled but SMTP settings incomplete
        """
        if not self.enabled:
            self.logger.debug("Email alerts disabled, skipping send")
            return False

        recipients = [r for r in dict.fromkeys(recipients) if r]
        if not recipients:
            return False

        if not subject or not text:
            raise ValidationError("Invalid email payload")

        if not self.is_configured():
            raise UnavailableError("SMTP configuration missing")

        message = MIMEText(text, 'plain', 'utf-8')
        message['Subject'] = subject
        message['From'] = self.mail_from
        message['To'] = self.mail_from

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._deliver, message, recipients)
        except (smtplib.SMTPException, OSError) as e:
            self.send_failures += 1
            self.logger.error(f"SMTP delivery failed: {e}")
            raise UnavailableError(f"SMTP delivery failed: {e}")

        self.emails_sent += 1
        self.logger.info(f"Email '{subject}' sent to {len(recipients)} recipients")
        return True

    def _deliver(self, message: MIMEText, recipients: List[str]):
        context = ssl.create_default_context()
        if self.smtp_port == 465:
            server = smtplib.SMTP_SSL(self.smtp_host, self.smtp_port,
                                      timeout=self.timeout, context=context)
        else:
            server = smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout)

        with server:
            if self.smtp_port != 465 and self.use_tls:
                server.starttls(context=context)
            server.login(self.smtp_user, self.smtp_password)
            server.sendmail(self.mail_from, recipients, message.as_string())


def compose_incident_alert(incident: Incident) -> Dict[str, str]:
    """Subject and plain-text body announcing a new incident"""
    crisis_type = incident.crisis_type.value
    location = incident.address or f"{incident.location.lat}, {incident.location.lng}"

    lines: List[Optional[str]] = [
        'A new SOS was raised on NearHelp.',
        f'Type: {crisis_type}',
        f'Location: {location}',
        f'Radius: {incident.radius_meters}m',
        f'Details: {incident.description}' if incident.description else None,
    ]

    return {
        'subject': f'NearHelp SOS Alert: {crisis_type.upper()}',
        'text': '\n'.join(line for line in lines if line),
    }
