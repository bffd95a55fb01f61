import re
from datetime import datetime
from typing import Annotated, Optional

from pydantic import AfterValidator, AnyUrl, BaseModel, BeforeValidator, EmailStr, Field, TypeAdapter, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from planit.shared.security_config import sanitize_input

YEARS_PATTERN = re.compile(r"^\d+$")
MAX_YEARS_OF_EXPERIENCE = 100
_url_adapter = TypeAdapter(AnyUrl)


def check_portfolio_url(v: Optional[str]) -> Optional[str]:
    if v is None or v == "":
        return v
    try:
        _url_adapter.validate_python(v)
    except ValidationError:
        raise ValueError("Invalid URL")
    return v


def check_years_of_experience(v):
    if isinstance(v, bool):
        raise ValueError("yearsOfExperience must be a non-negative integer")
    if isinstance(v, int):
        v = str(v)
    if v is None or v == "":
        return v
    if not isinstance(v, str) or not YEARS_PATTERN.match(v.strip()):
        raise ValueError("yearsOfExperience must be a non-negative integer")
    if int(v) > MAX_YEARS_OF_EXPERIENCE:
        raise ValueError(f"yearsOfExperience must be at most {MAX_YEARS_OF_EXPERIENCE}")
    return v.strip()


def coerce_id(v):
    # Relational clients tend to send numeric ids
    if isinstance(v, int) and not isinstance(v, bool):
        return str(v)
    return v


OwnerId = Annotated[str, BeforeValidator(coerce_id)]
PortfolioUrl = Annotated[Optional[str], AfterValidator(check_portfolio_url)]
YearsOfExperience = Annotated[Optional[str], BeforeValidator(check_years_of_experience)]


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True


# --- Users ---
class UserSignup(CamelModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: EmailStr
    phone: Optional[str] = None
    password: str = Field(..., min_length=6)
    role: str = Field(..., pattern="^(USER|ADMIN)$")

    @field_validator("first_name", "last_name", "phone")
    def sanitize_fields(cls, v):
        return sanitize_input(v)


class UserLogin(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class UserUpdate(CamelModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    password: Optional[str] = Field(None, min_length=6)

    @field_validator("first_name", "last_name", "phone")
    def sanitize_fields(cls, v):
        return sanitize_input(v)


class UserPublic(CamelModel):
    id: str
    first_name: str
    last_name: str
    email: EmailStr
    phone: Optional[str] = None
    role: str
    created_at: datetime
    updated_at: Optional[datetime] = None


# --- Planners ---
class PlannerOnboard(CamelModel):
    user_id: OwnerId = Field(..., min_length=1)
    company_name: str = Field(..., min_length=1)
    business_address: str = Field(..., min_length=1)
    social_media_links: Optional[str] = None
    portfolio_website: PortfolioUrl = None
    cac_number: Optional[str] = None

    @field_validator("company_name", "business_address", "social_media_links", "cac_number")
    def sanitize_fields(cls, v):
        return sanitize_input(v)


class PlannerUpdate(CamelModel):
    company_name: Optional[str] = None
    business_address: Optional[str] = None
    cac_number: Optional[str] = None
    social_media_links: Optional[str] = None
    portfolio_website: PortfolioUrl = None

    @field_validator("company_name", "business_address", "social_media_links", "cac_number")
    def sanitize_fields(cls, v):
        return sanitize_input(v)


class PlannerResponse(CamelModel):
    id: str
    user_id: str
    company_name: str
    business_address: str
    cac_number: Optional[str] = None
    social_media_links: Optional[str] = None
    portfolio_website: Optional[str] = None
    profile_photo: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    user: Optional[UserPublic] = None


# --- Vendors ---
class VendorOnboard(CamelModel):
    user_id: OwnerId = Field(..., min_length=1)
    company_name: str = Field(..., min_length=1)
    business_address: str = Field(..., min_length=1)
    cac_number: Optional[str] = None
    service_categories: Optional[str] = None
    years_of_experience: YearsOfExperience = None
    phone: Optional[str] = None

    @field_validator("company_name", "business_address", "cac_number", "service_categories", "phone")
    def sanitize_fields(cls, v):
        return sanitize_input(v)


class VendorUpdate(CamelModel):
    company_name: Optional[str] = None
    business_address: Optional[str] = None
    cac_number: Optional[str] = None
    service_categories: Optional[str] = None
    years_of_experience: YearsOfExperience = None
    phone: Optional[str] = None

    @field_validator("company_name", "business_address", "cac_number", "service_categories", "phone")
    def sanitize_fields(cls, v):
        return sanitize_input(v)


class VendorResponse(CamelModel):
    id: str
    user_id: str
    company_name: str
    business_address: str
    cac_number: Optional[str] = None
    service_categories: Optional[str] = None
    years_of_experience: Optional[int] = None
    phone: Optional[str] = None
    license_url: Optional[str] = None
    license_uploaded_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    user: Optional[UserPublic] = None


# --- Composite responses ---
class UserResponse(UserPublic):
    planner: Optional[PlannerResponse] = None
    vendor: Optional[VendorResponse] = None


class LoginResponse(CamelModel):
    user: UserResponse
    token: str
    token_type: str = "bearer"


class PhotoUploadResponse(CamelModel):
    file_url: str
    planner: PlannerResponse


class LicenseUploadResponse(CamelModel):
    file_url: str
    vendor: VendorResponse
