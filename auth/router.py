import logging
from typing import Dict

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from fastapi.concurrency import run_in_threadpool
from pymongo.collection import Collection
from pymongo.database import Database

from database import get_db, utcnow
from errors import ConflictError, NotFoundError, ValidationError
from . import schemas, utils

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["Authentication"])


# --- Shared account flows (users and admins live in separate collections) ---

def register_account(
    accounts: Collection,
    payload: schemas.UserCreate,
    role: str,
    background_tasks: BackgroundTasks,
    admin: bool = False,
) -> Dict:
    email = payload.email.lower()
    if accounts.find_one({"email": email}):
        raise ConflictError("Email already exists!", status_code=status.HTTP_409_CONFLICT)

    otp = utils.generate_otp()
    account = {
        "username": payload.username,
        "email": email,
        "password": utils.get_password_hash(payload.password),
        "otp": otp,
        "otp_expires_at": utils.otp_expiry(),
        "is_verified": False,
        "role": role,
        "createdAt": utcnow(),
    }
    account["_id"] = accounts.insert_one(account).inserted_id
    logger.info("Registered %s account %s with role %s", accounts.name, account["_id"], role)

    # mail goes out after the response is sent
    background_tasks.add_task(utils.send_otp_email, email, otp, admin)
    return utils.with_token(account)


def login_account(accounts: Collection, payload: schemas.UserLogin) -> Dict:
    account = accounts.find_one({"email": payload.email.lower()})
    if not account:
        raise NotFoundError("Invalid Email")
    if not utils.verify_password(payload.password, account["password"]):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid password")
    return utils.with_token(account)


def verify_account_otp(accounts: Collection, account: Dict, otp: str | None) -> Dict:
    if not otp:
        raise ValidationError("Please enter the OTP")

    stored = accounts.find_one({"_id": account["_id"]})
    if not stored:
        raise NotFoundError("User not found")

    expires_at = stored.get("otp_expires_at")
    if not stored.get("otp") or str(stored["otp"]) != str(otp).strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid OTP")
    if expires_at is not None and expires_at < utcnow():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="OTP has expired")

    accounts.update_one(
        {"_id": stored["_id"]},
        {"$set": {"otp": None, "otp_expires_at": None, "is_verified": True}},
    )
    stored["is_verified"] = True
    return utils.with_token(stored)


# --- Endpoints ---

@router.post("/register-user")
async def register_user(
    payload: schemas.UserCreate,
    background_tasks: BackgroundTasks,
    db: Database = Depends(get_db),
):
    return await run_in_threadpool(register_account, db.users, payload, "user", background_tasks)


@router.post("/login-user")
async def login_user(payload: schemas.UserLogin, db: Database = Depends(get_db)):
    return await run_in_threadpool(login_account, db.users, payload)


@router.post("/verify-otp")
def verify_otp(
    payload: schemas.OTPVerify,
    current_user: Dict = Depends(utils.get_current_user),
    db: Database = Depends(get_db),
):
    return verify_account_otp(db.users, current_user, payload.otp)


@router.get("/me")
def read_users_me(current_user: Dict = Depends(utils.get_current_user)):
    return utils.public_account(current_user)
