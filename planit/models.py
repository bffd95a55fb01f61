from datetime import datetime
from typing import Optional
from pydantic import BaseModel, EmailStr, Field

class UserDB(BaseModel):
    id: Optional[str] = Field(None, alias="_id")
    first_name: str
    last_name: str
    email: EmailStr
    phone: Optional[str] = None
    password_hash: str
    role: str
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        populate_by_name = True

class PlannerDB(BaseModel):
    id: Optional[str] = Field(None, alias="_id")
    user_id: str
    company_name: str
    business_address: str
    cac_number: Optional[str] = None
    social_media_links: Optional[str] = None
    portfolio_website: Optional[str] = None
    profile_photo: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        populate_by_name = True

class VendorDB(BaseModel):
    id: Optional[str] = Field(None, alias="_id")
    user_id: str
    company_name: str
    business_address: str
    cac_number: Optional[str] = None
    service_categories: Optional[str] = None
    years_of_experience: Optional[int] = None
    phone: Optional[str] = None
    license_url: Optional[str] = None
    license_uploaded_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        populate_by_name = True
