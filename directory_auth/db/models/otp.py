# directory_auth/db/models/otp.py
from sqlmodel import SQLModel, Field
from sqlalchemy import Index
from typing import Optional


class OTPRecord(SQLModel, table=True):
    __tablename__ = "otp_records"
    __table_args__ = (Index("idx_otp_records_phone_created", "phone_number", "created_at"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    phone_number: str = Field(max_length=20)
    created_at: int
    otp_code: str = Field(max_length=6)
    purpose: str = Field(default="registration", max_length=20)
    verified: bool = Field(default=False)
    expires_at: int = Field(index=True)
    attempts: int = Field(default=0)
