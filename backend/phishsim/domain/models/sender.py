"""
Sender Identity Domain Models
Email types (logical sender categories) and the email accounts that send
under them
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime


class EmailTypeCreate(BaseModel):
    """Create email type request"""
    value: str = ""
    display_name: str = ""
    description: str = ""
    is_active: bool = True
    sort_order: int = 0


class EmailTypeUpdate(EmailTypeCreate):
    """Update email type request; id must match the path when given"""
    id: Optional[int] = None


class EmailTypeResponse(BaseModel):
    """Email type response model"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    value: str
    display_name: str
    description: Optional[str] = ""
    is_active: bool = True
    sort_order: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class EmailAccountCreate(BaseModel):
    """Create email account request"""
    email: str = ""
    email_type: str = ""
    credential_id: str = Field("", description="Credential reference held by the email engine")
    is_active: bool = True


class EmailAccountUpdate(EmailAccountCreate):
    """Update email account request; id must match the path when given"""
    id: Optional[int] = None
    credential_name: Optional[str] = None


class EmailAccountResponse(BaseModel):
    """Email account response model"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    email_type: str
    credential_id: Optional[str] = ""
    credential_name: Optional[str] = ""
    usage_count: int = 0
    last_used: Optional[datetime] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
