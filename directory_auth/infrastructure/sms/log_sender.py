import logging

from ...application.ports.sms_sender import SmsSender
from ...utils import mask_phone_number

logger = logging.getLogger(__name__)


class LoggingSmsSender(SmsSender):
    """Used when no SMS provider is configured (local development)."""

    def send_otp(self, phone_number: str, otp_code: str) -> None:
        logger.info(f"No SMS provider configured; OTP for {mask_phone_number(phone_number)} not delivered")
        logger.debug(f"OTP code for {mask_phone_number(phone_number)}: {otp_code}")
