from typing import Protocol


class SmsSender(Protocol):
    def send_otp(self, phone_number: str, otp_code: str) -> None:
        ...
