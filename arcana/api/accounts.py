"""
Account endpoints: login, registration, password reset and session checks.

Form problems are answered with HTTP 200 and an ``error`` field so the login
and registration forms can show them inline.
"""
import logging
from typing import Dict, Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from arcana.api.auth import (
    build_user_record,
    is_valid_email,
    normalize_email,
    password_problem,
    public_user,
    session_claims,
)
from arcana.api.deps import get_current_user, get_database, require_internal_secret
from arcana.db import schemas
from arcana.db.database import DatabaseService
from arcana.db.models import now_utc
from arcana.services.mailer import ShopMailer, get_mailer
from arcana.utils.jwt_tokens import (
    InvalidSessionToken,
    create_reset_token,
    create_session_token,
    generate_reset_code,
    lifetime_for,
    session_cookie_kwargs,
    verify_reset_token,
)
from arcana.utils.passwords import hash_password, needs_rehash, verify_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"], dependencies=[Depends(require_internal_secret)])

USERS_TABLE = "users"


def _form_error(message: str) -> Dict[str, Any]:
    return {"error": message}


@router.post("/login")
def login(payload: schemas.LoginRequest, db: DatabaseService = Depends(get_database)):
    if not payload.email or not payload.password:
        return _form_error("Email and password are required.")
    if not is_valid_email(payload.email):
        return _form_error("Enter a valid email.")

    user = db.read_by("email", normalize_email(payload.email), USERS_TABLE)
    if not user or not verify_password(payload.password, user.get("password_hash") or ""):
        logger.info("Failed login for %s", normalize_email(payload.email))
        return _form_error("Invalid credentials.")

    if needs_rehash(user["password_hash"]):
        user = db.update(
            user["id"],
            {"password_hash": hash_password(payload.password), "updated_at": now_utc().isoformat()},
            USERS_TABLE,
        ) or user
        logger.info("Upgraded password hash for user %s", user.get("id"))

    lifetime = lifetime_for(payload.remember_me)
    token = create_session_token(session_claims(user), remember=payload.remember_me)
    response = JSONResponse({
        "success": True,
        "user": public_user(user),
        "message": "Login successful!",
    })
    response.set_cookie(value=token, **session_cookie_kwargs(int(lifetime.total_seconds())))
    return response


@router.post("/register")
async def register(
    payload: schemas.RegisterRequest,
    db: DatabaseService = Depends(get_database),
    mailer: ShopMailer = Depends(get_mailer),
):
    if not payload.name or not payload.email or not payload.password:
        return _form_error("Name, email and password are required.")
    if not is_valid_email(payload.email):
        return _form_error("Enter a valid email.")
    problem = password_problem(payload.password)
    if problem:
        return _form_error(problem)

    email = normalize_email(payload.email)
    if db.read_by("email", email, USERS_TABLE):
        return _form_error("Email already registered.")

    record = db.create(build_user_record(payload.name, email, payload.password), USERS_TABLE)
    logger.info("Registered user %s (role=%s)", record.get("id"), record.get("role"))

    result = await mailer.send_welcome_email(email, payload.name.strip())
    if not result.get("success"):
        logger.warning(f"Failed to send welcome email to {email}: {result.get('error')}")

    return {"success": True, "message": "Account created successfully!"}


@router.post("/forgot")
async def forgot_password(
    payload: schemas.ForgotPasswordRequest,
    db: DatabaseService = Depends(get_database),
    mailer: ShopMailer = Depends(get_mailer),
):
    if not is_valid_email(payload.email):
        return _form_error("Enter a valid email.")
    email = normalize_email(payload.email)
    user = db.read_by("email", email, USERS_TABLE)
    if not user:
        return _form_error("Email not found in our records.")

    code = generate_reset_code()
    result = await mailer.send_password_reset_email(email, code, user.get("display_name"))
    if not result.get("success"):
        logger.error(f"Password reset email to {email} failed: {result.get('error')}")
        return _form_error("Failed to send reset email. Please try again.")

    return {
        "success": True,
        "message": f"Code sent to {email}. Please check your email inbox and spam folders.",
        "reset_token": create_reset_token(email, code),
    }


@router.post("/verify")
def verify_code(payload: schemas.VerifyCodeRequest):
    if not payload.code or not payload.reset_token:
        return _form_error("Code and reset token are required.")
    try:
        email = verify_reset_token(payload.reset_token, payload.code, payload.email)
    except InvalidSessionToken as e:
        return _form_error(str(e))
    return {"success": True, "email": email, "message": "Code verified successfully."}


@router.post("/reset")
def reset_password(payload: schemas.ResetPasswordRequest, db: DatabaseService = Depends(get_database)):
    if not payload.email or not payload.new_password or not payload.confirm_password:
        return _form_error("Email and passwords are required.")
    if payload.new_password != payload.confirm_password:
        return _form_error("Passwords must match.")
    problem = password_problem(payload.new_password)
    if problem:
        return _form_error(problem)
    try:
        email = verify_reset_token(payload.reset_token, payload.code, payload.email)
    except InvalidSessionToken as e:
        return _form_error(str(e))

    user = db.read_by("email", email, USERS_TABLE)
    if not user:
        return _form_error("User not found.")
    updated = db.update(
        str(user["id"]),
        {"password_hash": hash_password(payload.new_password), "updated_at": now_utc().isoformat()},
        USERS_TABLE,
    )
    if not updated:
        return _form_error("Unable to update password.")
    logger.info("Password reset for user %s", user["id"])
    return {"success": True, "message": "Password updated successfully. You can now log in."}


@router.get("/verify")
def verify_session(user: Dict[str, Any] = Depends(get_current_user)):
    return {
        "success": True,
        "valid": True,
        "user": {"id": user.get("id"), "email": user.get("email"), "role": user.get("role") or "user"},
    }


@router.post("/logout")
def logout(user: Dict[str, Any] = Depends(get_current_user)):
    response = JSONResponse({"success": True, "message": "Logged out successfully!"})
    response.set_cookie(value="", **session_cookie_kwargs(0))
    return response
