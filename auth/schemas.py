from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class UserCreate(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6)


class AdminCreate(UserCreate):
    # only a superadmin may ask for admin/superadmin
    role: Optional[str] = Field(None, pattern="^(user|admin|superadmin)$")


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class OTPVerify(BaseModel):
    otp: Optional[str] = None

