from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from smartbank.data.base import get_db
from smartbank.domain.services.account_service import update_settings, user_settings
from smartbank.domain.services.auth_service import (
    change_password,
    get_current_user,
    login,
    logout,
    oauth2_scheme,
    register_user,
)
from smartbank.presentation.schemas import (
    ChangePasswordRequest,
    LoginRequest,
    RegisterRequest,
    SettingsResponse,
    SettingsUpdateRequest,
    UserResponse,
)

router = APIRouter(prefix="/api", tags=["auth"])


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register_user_endpoint(req: RegisterRequest, db: Session = Depends(get_db)):
    user = register_user(
        db, req.first_name, req.last_name, req.email, req.password, phone=req.phone
    )
    return {
        "message": "User registered successfully",
        "user": {"id": user.id, "email": user.email, "name": user.full_name},
    }


@router.post("/login")
def login_endpoint(req: LoginRequest, db: Session = Depends(get_db)):
    token, user = login(db, req.email, req.password)
    return {"token": token, "user": UserResponse.from_orm_user(user)}


@router.get("/verify")
def verify_endpoint(current_user=Depends(get_current_user)):
    return {"user": UserResponse.from_orm_user(current_user)}


@router.post("/logout")
def logout_endpoint(
    token: str | None = Depends(oauth2_scheme), db: Session = Depends(get_db)
):
    """Always succeeds, even when the session is already gone."""
    logout(db, token)
    return {"message": "Logged out"}


@router.get("/user/settings")
def get_settings(current_user=Depends(get_current_user)):
    return {"settings": SettingsResponse.from_settings(user_settings(current_user))}


@router.put("/user/settings")
def put_settings(
    req: SettingsUpdateRequest,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    settings = update_settings(db, current_user, req.model_dump(exclude_none=True))
    return {"settings": SettingsResponse.from_settings(settings)}


@router.post("/user/change-password")
def change_password_endpoint(
    req: ChangePasswordRequest,
    token: str | None = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    change_password(db, current_user, req.current_password, req.new_password, token)
    return {"message": "Password updated"}
