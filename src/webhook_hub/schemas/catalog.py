"""Catalog-related Pydantic schemas."""

from pydantic import (
    AnyHttpUrl,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
)

_HTTP_URL = TypeAdapter(AnyHttpUrl)


def _validate_endpoint(value: str | None) -> str | None:
    """Reject endpoints that are not absolute http(s) URLs; the text is stored as given."""
    if value is None:
        return value
    try:
        _HTTP_URL.validate_python(value)
    except ValidationError as err:
        raise ValueError("Endpoint must be an absolute http(s) URL") from err
    return value


class BusinessAccountCreate(BaseModel):
    """Schema for registering a business account."""

    business_id: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=100)
    timezone: str = Field("UTC", max_length=50)


class BusinessAccountResponse(BaseModel):
    """Schema for business account information returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    business_id: str
    name: str
    timezone: str


class AppCreate(BaseModel):
    """Schema for registering an app under a business account."""

    id: str = Field(..., min_length=1, max_length=50, description="Provider app id")
    business_id: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=100)
    verify_token: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Secret echoed back by the provider during the webhook handshake",
    )


class AppResponse(BaseModel):
    """Schema for app information returned by the API.

    The verify token is write-only and never returned.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str
    business_id: str
    name: str


class PhoneNumberCreate(BaseModel):
    """Schema for registering an inbound phone number id."""

    phone_number_id: str = Field(..., min_length=1, max_length=50)
    app_id: str = Field(..., min_length=1, max_length=50)
    phone_number: str | None = Field(None, max_length=20)
    display_name: str | None = Field(None, max_length=100)


class PhoneNumberResponse(BaseModel):
    """Schema for phone number information returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    phone_number_id: str
    app_id: str
    phone_number: str | None
    display_name: str | None
    destination_count: int = 0


class DestinationCreate(BaseModel):
    """Schema for creating a downstream destination."""

    name: str = Field(..., min_length=1, max_length=100)
    endpoint: str = Field(..., min_length=1, max_length=255, description="Absolute URL")
    description: str | None = None
    is_active: bool = True

    @field_validator("endpoint")
    @classmethod
    def validate_endpoint(cls, v: str) -> str | None:
        return _validate_endpoint(v)


class DestinationUpdate(BaseModel):
    """Schema for partially updating a destination."""

    name: str | None = Field(None, min_length=1, max_length=100)
    endpoint: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    is_active: bool | None = None

    @field_validator("endpoint")
    @classmethod
    def validate_endpoint(cls, v: str | None) -> str | None:
        return _validate_endpoint(v)


class DestinationResponse(BaseModel):
    """Schema for destination information returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    endpoint: str
    description: str | None
    is_active: bool


class MappingCreate(BaseModel):
    """Schema for mapping a phone number id to a destination."""

    phone_number_id: str = Field(..., min_length=1, max_length=50)
    destination_id: int
    priority: int = Field(0, description="Higher priority destinations are enqueued first")


class MappingResponse(BaseModel):
    """Schema for a mapping returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    phone_number_id: str
    destination_id: int
    priority: int
    is_active: bool


class MappedDestinationResponse(MappingResponse):
    """Mapping joined with its destination, as listed per phone number."""

    destination_name: str
    endpoint: str
    description: str | None = None
