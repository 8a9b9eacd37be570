from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class SignatureCreate(BaseModel):
    employee_id: str
    month: int = Field(ge=1, le=12)
    year: int = Field(ge=2000, le=2100)
    signature_image: str = Field(min_length=1)


class SignatureResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    employee_id: str
    month: int
    year: int
    signature_image: str
    signed_at: datetime
