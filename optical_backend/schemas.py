"""
Pydantic schemas for the optical shop API.

Field names follow the camelCase keys stored in the JSON collections.
"""

from __future__ import annotations

from typing import ClassVar, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

InquiryStatus = Literal[
    "new", "in-progress", "contacted", "quoted", "completed", "cancelled"
]
ContactStatus = Literal[
    "new", "in-progress", "contacted", "scheduled", "completed", "cancelled"
]
Priority = Literal["low", "medium", "high"]
ContactSource = Literal["contact-form", "phone", "walk-in", "referral"]
ProductType = Literal["frame", "sunglasses"]


class _Schema(BaseModel):
    # Unknown client keys are dropped, never stored.
    model_config = ConfigDict(extra="ignore")


class CustomerInfo(_Schema):
    name: str = Field(..., min_length=1, max_length=256)
    email: str = Field(..., min_length=3, max_length=256)
    phone: Optional[str] = Field(default=None, max_length=64)


class ProductRef(_Schema):
    type: ProductType
    id: Optional[Union[str, int]] = None
    name: Optional[str] = None
    brand: Optional[str] = None
    price: Optional[Union[int, float]] = None
    imageUrl: Optional[str] = None


class _RecordUpdate(_Schema):
    """Partial update; only fields the client sent are merged."""

    # Fields that may be omitted but never cleared with null.
    NOT_NULLABLE: ClassVar[tuple[str, ...]] = ()

    id: Optional[str] = None

    @model_validator(mode="after")
    def _reject_nulls(self):
        cleared = [
            name
            for name in self.NOT_NULLABLE
            if name in self.model_fields_set and getattr(self, name) is None
        ]
        if cleared:
            raise ValueError(f"Fields cannot be null: {', '.join(cleared)}")
        return self

    def changes(self) -> dict:
        data = self.model_dump(exclude_unset=True, exclude_none=False)
        data.pop("id", None)
        for key, value in list(data.items()):
            if isinstance(value, dict):
                data[key] = {k: v for k, v in value.items() if v is not None}
        return data


class InquiryCreate(_Schema):
    customerInfo: CustomerInfo
    product: ProductRef
    message: str = Field(..., min_length=1, max_length=5000)


class InquiryUpdate(_RecordUpdate):
    NOT_NULLABLE: ClassVar[tuple[str, ...]] = (
        "customerInfo",
        "product",
        "message",
        "status",
        "priority",
    )

    customerInfo: Optional[CustomerInfo] = None
    product: Optional[ProductRef] = None
    message: Optional[str] = Field(default=None, min_length=1, max_length=5000)
    status: Optional[InquiryStatus] = None
    priority: Optional[Priority] = None
    assignedTo: Optional[str] = None
    notes: Optional[str] = None
    followUpDate: Optional[str] = None


class ContactCreate(_Schema):
    id: Optional[str] = Field(default=None, min_length=1, max_length=128)
    customerInfo: CustomerInfo
    serviceInterest: Optional[str] = None
    message: str = Field(..., min_length=1, max_length=5000)
    status: ContactStatus = "new"
    priority: Priority = "medium"
    source: ContactSource = "contact-form"
    assignedTo: Optional[str] = None
    notes: Optional[str] = None
    followUpDate: Optional[str] = None


class ContactUpdate(_RecordUpdate):
    NOT_NULLABLE: ClassVar[tuple[str, ...]] = (
        "customerInfo",
        "message",
        "status",
        "priority",
        "source",
    )

    customerInfo: Optional[CustomerInfo] = None
    serviceInterest: Optional[str] = None
    message: Optional[str] = Field(default=None, min_length=1, max_length=5000)
    status: Optional[ContactStatus] = None
    priority: Optional[Priority] = None
    source: Optional[ContactSource] = None
    assignedTo: Optional[str] = None
    notes: Optional[str] = None
    followUpDate: Optional[str] = None


class StatsResponse(BaseModel):
    total: int
    new: int
    inProgress: int
    completed: int
    thisMonth: int
    thisWeek: int


class SaveCollectionResponse(BaseModel):
    success: bool
    message: str
    count: Optional[int] = None


class MutationResponse(BaseModel):
    success: bool
    message: str


class UploadImageResponse(BaseModel):
    success: bool
    path: str
    originalName: str
    filename: str
    size: int


class DeleteImageRequest(BaseModel):
    imagePath: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    message: str
    timestamp: str
