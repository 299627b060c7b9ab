from typing import Optional
from pydantic import BaseModel


# Auth form payloads. Fields are optional on purpose: missing values are
# reported by the handlers as form errors rather than 4xx validation failures.

class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None
    remember_me: bool = False


class RegisterRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class ForgotPasswordRequest(BaseModel):
    email: Optional[str] = None


class VerifyCodeRequest(BaseModel):
    code: Optional[str] = None
    reset_token: Optional[str] = None
    email: Optional[str] = None


class ResetPasswordRequest(BaseModel):
    email: Optional[str] = None
    new_password: Optional[str] = None
    confirm_password: Optional[str] = None
    code: Optional[str] = None
    reset_token: Optional[str] = None


class UserAdminUpdate(BaseModel):
    role: Optional[str] = None
    display_name: Optional[str] = None
