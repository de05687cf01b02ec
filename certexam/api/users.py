from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session

from certexam.api.deps import get_settings, get_mailer, ok
from certexam.core.database import get_db
from certexam.core.auth import TokenData, get_current_user
from certexam.core.config import Settings
from certexam.services.identity import IdentityService, profile
from certexam.services.mailer import Mailer

router = APIRouter()

class SignUp(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)

class EmailOnly(BaseModel):
    email: EmailStr

class VerifyEmail(BaseModel):
    email: EmailStr
    otp: str = Field(pattern=r"^[0-9]{6}$")

class SignIn(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)

class ResetPassword(BaseModel):
    email: EmailStr
    otp: str = Field(pattern=r"^[0-9]{6}$")
    newPassword: str = Field(min_length=6, max_length=128)

def identity(db: Session = Depends(get_db), settings: Settings = Depends(get_settings),
             mailer: Mailer = Depends(get_mailer)) -> IdentityService:
    return IdentityService(db, settings, mailer)

def _cookie(response: Response, settings: Settings, name: str, value: str, max_age: int) -> None:
    # SameSite=None is only honoured by browsers on secure cookies
    secure = settings.is_production()
    response.set_cookie(name, value, httponly=True, secure=secure, samesite="none" if secure else "lax", max_age=max_age)

@router.post("/sign-up", status_code=201)
def sign_up(payload: SignUp, svc: IdentityService = Depends(identity)):
    user = svc.register(payload.name, payload.email, payload.password)
    return ok(
        {"id": user.id, "name": user.name, "email": user.email, "role": user.role},
        "Registration successful. Please verify your email.",
    )

@router.post("/verify-email")
def verify_email(payload: VerifyEmail, svc: IdentityService = Depends(identity)):
    user = svc.verify_email(payload.email, payload.otp)
    return ok({"id": user.id, "name": user.name, "email": user.email}, "Email verified successfully")

@router.post("/resend-otp")
def resend_otp(payload: EmailOnly, svc: IdentityService = Depends(identity)):
    svc.resend_otp(payload.email)
    return ok(message="New OTP sent successfully")

@router.post("/sign-in")
def sign_in(payload: SignIn, response: Response, svc: IdentityService = Depends(identity),
            settings: Settings = Depends(get_settings)):
    signed = svc.sign_in(payload.email, payload.password)
    _cookie(response, settings, "accessToken", signed.access_token, settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60)
    _cookie(response, settings, "refreshToken", signed.refresh_token, settings.REFRESH_TOKEN_EXPIRE_DAYS * 86400)
    return ok(profile(signed.user), "Login successful", accessToken=signed.access_token)

@router.post("/generate-access-token")
def generate_access_token(request: Request, response: Response, svc: IdentityService = Depends(identity),
                          settings: Settings = Depends(get_settings)):
    token = svc.refresh_access(request.cookies.get("refreshToken", ""))
    _cookie(response, settings, "accessToken", token, settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60)
    return ok({"accessToken": token})

@router.get("/profile")
def get_profile(user: TokenData = Depends(get_current_user), svc: IdentityService = Depends(identity)):
    return ok(profile(svc.get_profile(user.id)))

@router.post("/sign-out")
def sign_out(response: Response, user: TokenData = Depends(get_current_user),
             svc: IdentityService = Depends(identity)):
    svc.sign_out(user.id)
    response.delete_cookie("accessToken")
    response.delete_cookie("refreshToken")
    return ok(message="Logged out successfully")

@router.post("/forgot-password")
def forgot_password(payload: EmailOnly, svc: IdentityService = Depends(identity)):
    svc.forgot_password(payload.email)
    return ok(message="New OTP sent successfully")

@router.post("/reset-password")
def reset_password(payload: ResetPassword, svc: IdentityService = Depends(identity)):
    svc.reset_password(payload.email, payload.otp, payload.newPassword)
    return ok(message="Password reset successfully")
