"""Pydantic models for entity payloads accepted by the storage service.

Identity fields (``partition_key``, ``row_key``) are optional on input;
the service fills defaults. ``etag`` and ``timestamp`` are accepted and
ignored so a record read from the API can be sent straight back on
update.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, constr

Phone = constr(pattern=r"^\d{10}$")
Email = constr(pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", max_length=100)


class EntityIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    partition_key: Optional[str] = None
    row_key: Optional[str] = None
    etag: Optional[str] = None
    timestamp: Optional[datetime] = None

    def properties(self) -> dict:
        """Entity fields without identity and concurrency metadata."""
        return self.model_dump(
            mode="json",
            exclude={"partition_key", "row_key", "etag", "timestamp"},
        )


class CustomerIn(EntityIn):
    customer_name: str = Field(min_length=1, max_length=50)
    email: Email
    phone: Phone
    address: str = Field(min_length=1)
    file_name: Optional[str] = None


class ProductIn(EntityIn):
    name: str = Field(min_length=1, max_length=100)
    description: str = Field(min_length=1, max_length=500)
    price: float = Field(gt=0)
    quantity: int = Field(ge=0)
    image_url: Optional[str] = None


class OrderIn(EntityIn):
    """An order record, as stored and as carried on the intake queue."""

    customer_row_key: str = Field(min_length=1)
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    product_row_key: str = Field(min_length=1)
    product_name: Optional[str] = Field(default=None, max_length=100)
    quantity: int = Field(ge=1)
    unit_price: Optional[float] = None
    total_price: Optional[float] = None
    order_date: Optional[datetime] = None


class BlobUploadIn(BaseModel):
    file_name: str = Field(min_length=1)
    base64_data: str = Field(min_length=1)


class FileUploadIn(BaseModel):
    base64_data: str = Field(min_length=1)


class FileUploadAutoIn(BaseModel):
    directory_name: Optional[str] = None
    file_name: str = Field(min_length=1)
    base64_data: str = Field(min_length=1)
