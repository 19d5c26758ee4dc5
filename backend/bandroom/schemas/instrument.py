"""
Pydantic schemas for the instrument catalog.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from bandroom.models.enums import InstrumentStatus, InstrumentType


class InstrumentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str = Field("", max_length=2000)
    type: InstrumentType
    status: InstrumentStatus = InstrumentStatus.AVAILABLE
    image_url: Optional[str] = Field(None, max_length=1024)


class InstrumentUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)
    type: Optional[InstrumentType] = None
    status: Optional[InstrumentStatus] = None
    image_url: Optional[str] = Field(None, max_length=1024)


class InstrumentResponse(BaseModel):
    id: int
    name: str
    description: str
    type: InstrumentType
    status: InstrumentStatus
    image_url: Optional[str]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
