import logging
from typing import Optional

from twilio.rest import Client
from twilio.base.exceptions import TwilioException

from ...application.ports.sms_sender import SmsSender
from ...utils import mask_phone_number

logger = logging.getLogger(__name__)

OTP_MESSAGE = "Your verification code is {code}. It expires in {minutes} minutes."


class TwilioSmsSender(SmsSender):
    def __init__(self, account_sid: str, auth_token: str, from_number: str,
                 expiry_minutes: int = 10, client: Optional[Client] = None):
        self.client = client or Client(account_sid, auth_token)
        self.from_number = from_number
        self.expiry_minutes = expiry_minutes

    def send_otp(self, phone_number: str, otp_code: str) -> None:
        try:
            message = self.client.messages.create(
                to=phone_number,
                from_=self.from_number,
                body=OTP_MESSAGE.format(code=otp_code, minutes=self.expiry_minutes),
            )
        except TwilioException as e:
            logger.error(f"Twilio send failed for {mask_phone_number(phone_number)}: {e}")
            raise
        logger.info(f"OTP SMS queued for {mask_phone_number(phone_number)}, SID: {message.sid}")
