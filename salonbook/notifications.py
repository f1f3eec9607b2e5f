"""Feedback-link notifications.

Messages are composed and logged but never delivered; the Twilio settings
are only checked so misconfiguration shows up in the logs.
"""
from __future__ import annotations

from urllib.parse import urlencode

from flask import current_app

from .models import Appointment

CHANNELS = ("sms", "whatsapp")


class FeedbackNotifier:
    def __init__(
        self,
        frontend_url: str,
        enabled: bool = False,
        channel: str = "sms",
        account_sid: str | None = None,
        auth_token: str | None = None,
        from_number: str | None = None,
    ) -> None:
        self.frontend_url = frontend_url.rstrip("/")
        if channel not in CHANNELS:
            raise ValueError(f"Unknown feedback channel: {channel}")
        self.enabled = enabled
        self.channel = channel
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number

    @classmethod
    def from_config(cls, config) -> "FeedbackNotifier":
        return cls(
            frontend_url=config.get("FRONTEND_URL", "http://localhost:3000"),
            enabled=bool(config.get("SMS_ENABLED")),
            channel=config.get("FEEDBACK_CHANNEL", "sms"),
            account_sid=config.get("TWILIO_ACCOUNT_SID"),
            auth_token=config.get("TWILIO_AUTH_TOKEN"),
            from_number=config.get("TWILIO_PHONE_NUMBER"),
        )

    def feedback_url(self, appointment_id: int, phone: str) -> str:
        query = urlencode({"appointment": appointment_id, "phone": phone})
        return f"{self.frontend_url}/feedback?{query}"

    def _compose(self, appointment: Appointment) -> tuple[str, str]:
        url = self.feedback_url(appointment.appointment_id, appointment.customer_phone)
        message = (
            f"Hi {appointment.customer_name}! Thank you for visiting us. "
            f"Please share your feedback: {url}"
        )
        return url, message

    def send(self, appointment: Appointment) -> dict[str, object]:
        """Send the feedback link over the configured channel."""
        if self.channel == "whatsapp":
            return self.send_whatsapp(appointment)
        return self.send_sms(appointment)

    def send_sms(self, appointment: Appointment) -> dict[str, object]:
        if not self.enabled:
            current_app.logger.info("SMS service is disabled; feedback link not sent")
            return {"success": False, "message": "SMS service is disabled"}

        if not (self.account_sid and self.auth_token and self.from_number):
            current_app.logger.warning("Twilio credentials not configured")
            return {"success": False, "message": "SMS service not configured"}

        url, message = self._compose(appointment)
        current_app.logger.info("SMS would be sent to %s: %s", appointment.customer_phone, message)
        return {
            "success": True,
            "message": "Feedback link sent via SMS",
            "mock_data": {"phone": appointment.customer_phone, "message": message, "url": url},
        }

    def send_whatsapp(self, appointment: Appointment) -> dict[str, object]:
        if not self.enabled:
            current_app.logger.info("WhatsApp service is disabled; feedback link not sent")
            return {"success": False, "message": "WhatsApp service is disabled"}

        url, message = self._compose(appointment)
        current_app.logger.info(
            "WhatsApp message would be sent to whatsapp:%s: %s", appointment.customer_phone, message
        )
        return {
            "success": True,
            "message": "Feedback link sent via WhatsApp",
            "mock_data": {"phone": appointment.customer_phone, "message": message, "url": url},
        }
