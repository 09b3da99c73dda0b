"""
Run summaries sent by email and/or Slack.
"""

import logging
import smtplib
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict, List

import requests

from .config import DeploymentConfig
from .orchestrator import DeploymentRun

logger = logging.getLogger(__name__)


def summarize(run: DeploymentRun) -> str:
    if run.succeeded:
        return f"Deployment completed: {len(run.deployed)} deployed, {len(run.skipped)} skipped"
    failed = run.failed_artifact or "(graph)"
    return f"Deployment failed at {failed} during {run.failed_step}: {run.error}"


class Notifier:
    """Sends alerts through whatever channels are configured."""

    def __init__(self, config: DeploymentConfig):
        self.config = config

    @property
    def enabled(self) -> bool:
        return bool(self.config.slack_webhook or self.config.notification_email)

    def notify(self, run: DeploymentRun) -> None:
        """Send a run summary. Failures are logged, never raised."""
        message = summarize(run)
        if self.config.notification_email:
            self._send_email_alert(message, run)
        if self.config.slack_webhook:
            self._send_slack_alert(message, run)

    def _send_email_alert(self, message: str, run: DeploymentRun) -> None:
        config = self.config
        try:
            if not all([config.smtp_username, config.smtp_password, config.notification_email]):
                logger.warning("Email notification not configured")
                return

            msg = MIMEMultipart()
            msg['From'] = config.smtp_username
            msg['To'] = config.notification_email
            msg['Subject'] = f"Deployment {run.state.value} on {config.network}"

            lines = [f"- {name}: {address}" for name, address in run.addresses.items()]
            body = (
                f"Time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n"
                f"Network: {config.network} (chain {config.chain_id})\n"
                f"Message: {message}\n\n"
                "Addresses:\n" + ("\n".join(lines) or "(none)") + "\n"
            )
            msg.attach(MIMEText(body, 'plain'))

            server = smtplib.SMTP(config.smtp_server, config.smtp_port)
            try:
                server.starttls()
                server.login(config.smtp_username, config.smtp_password)
                server.send_message(msg)
            finally:
                server.quit()

            logger.info("Email alert sent successfully")

        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email alert: {e}")

    def _slack_payload(self, message: str, run: DeploymentRun) -> Dict[str, Any]:
        fields: List[Dict[str, Any]] = [
            {"title": name, "value": address, "short": False}
            for name, address in run.addresses.items()
        ]
        fields.append({"title": "State", "value": run.state.value, "short": True})
        fields.append({"title": "Network", "value": self.config.network, "short": True})
        icon = "✅" if run.succeeded else "🚨"
        return {"text": f"{icon} {message}", "attachments": [{"fields": fields}]}

    def _send_slack_alert(self, message: str, run: DeploymentRun) -> None:
        try:
            response = requests.post(
                self.config.slack_webhook, json=self._slack_payload(message, run), timeout=10
            )
            response.raise_for_status()
            logger.info("Slack alert sent successfully")
        except requests.exceptions.RequestException as e:
            logger.error(f"Failed to send Slack alert: {e}")
