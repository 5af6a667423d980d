"""Pydantic schemas for the catalog API.

Request bodies are validated here before anything reaches the domain
services. Files travel inside JSON as base64 text and are decoded during
validation.
"""

import base64
import binascii
import re
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .domain import Upload

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PHONE_RE = re.compile(r"^\d{10}$")


class FileIn(BaseModel):
    """A file carried as base64 text.

    Attributes:
        file_name: Client-side file name; only the extension is kept for
            product images.
        base64_data: File content, base64-encoded.
    """

    file_name: str = Field(min_length=1, max_length=255)
    base64_data: str = Field(min_length=1)

    @field_validator("base64_data")
    @classmethod
    def validate_base64(cls, v: str) -> str:
        try:
            base64.b64decode(v, validate=True)
        except (binascii.Error, ValueError):
            raise ValueError("Invalid base64 data format")
        return v

    def to_upload(self) -> Upload:
        return Upload(file_name=self.file_name, data=base64.b64decode(self.base64_data))


class CustomerDTO(BaseModel):
    """Schema for creating or replacing a customer."""

    customer_name: str = Field(min_length=1, max_length=50)
    email: str = Field(max_length=100)
    phone: str
    address: str = Field(min_length=1)
    file_name: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        """Check the email shape and strip surrounding whitespace.

        Raises:
            ValueError: When the value does not look like an email address.
        """
        v2 = v.strip()
        if not EMAIL_RE.match(v2):
            raise ValueError("Invalid email address")
        return v2

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        if not PHONE_RE.match(v):
            raise ValueError("Phone number must be exactly 10 digits")
        return v


class ProductDTO(BaseModel):
    """Schema for creating or replacing a product, with an optional new image."""

    name: str = Field(min_length=1, max_length=100)
    description: str = Field(min_length=1, max_length=500)
    price: float = Field(gt=0)
    quantity: int = Field(ge=0)
    image: Optional[FileIn] = None


class OrderDTO(BaseModel):
    """Schema for placing or updating an order."""

    customer_row_key: str = Field(min_length=1)
    product_row_key: str = Field(min_length=1)
    quantity: int = Field(ge=1)
