from typing import Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from fastapi.concurrency import run_in_threadpool
from pymongo.database import Database

from auth import schemas as auth_schemas, utils as auth_utils
from auth.router import login_account, register_account, verify_account_otp
from database import get_db

router = APIRouter(prefix="/api/admins", tags=["Admins"])


@router.post("/register-admin")
async def register_admin(
    payload: auth_schemas.AdminCreate,
    background_tasks: BackgroundTasks,
    db: Database = Depends(get_db),
    current_user: Optional[Dict] = Depends(auth_utils.get_optional_user),
):
    """
    Open registration lands on role 'user'. Asking for 'admin' or
    'superadmin' needs a superadmin token.
    """
    wants_elevated = payload.role in auth_utils.ADMIN_ROLES
    if wants_elevated and (not current_user or current_user.get("role") != "superadmin"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only superadmin can create admin or superadmin accounts",
        )
    role = payload.role if wants_elevated else "user"
    return await run_in_threadpool(register_account, db.admins, payload, role, background_tasks, admin=True)


@router.post("/login-admin")
async def login_admin(payload: auth_schemas.UserLogin, db: Database = Depends(get_db)):
    return await run_in_threadpool(login_account, db.admins, payload)


@router.post("/create-admin")
async def create_admin(
    payload: auth_schemas.UserCreate,
    background_tasks: BackgroundTasks,
    db: Database = Depends(get_db),
    superadmin: Dict = Depends(auth_utils.get_superadmin_user),
):
    return await run_in_threadpool(register_account, db.admins, payload, "admin", background_tasks, admin=True)


@router.post("/verify-otp")
def verify_admin_otp(
    payload: auth_schemas.OTPVerify,
    current_user: Dict = Depends(auth_utils.get_current_user),
    db: Database = Depends(get_db),
):
    return verify_account_otp(db.admins, current_user, payload.otp)
