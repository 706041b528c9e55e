from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Request, Response, status

from .auth.access import Principal
from .auth.dependencies import (
    get_auth_service,
    get_current_account,
    get_verification_service,
    require_admin,
    require_creator,
)
from .auth.recovery import VerificationService
from .auth.service import AuthenticationService
from .schemas import (
    AccountResponse,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    MessageResponse,
    ProfileUpdateRequest,
    RegisterRequest,
    ResetPasswordRequest,
)

router = APIRouter(prefix="/api/v1", tags=["auth"])


def _client_host(request: Request) -> str:
    return request.client.host if request.client else "unknown"


@router.post("/register", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
def register(
    payload: RegisterRequest,
    response: Response,
    service: AuthenticationService = Depends(get_auth_service),
):
    return service.register(
        response,
        name=payload.name,
        email=payload.email,
        password=payload.password,
    )


@router.post("/login", response_model=AccountResponse)
def login(
    payload: LoginRequest,
    request: Request,
    response: Response,
    service: AuthenticationService = Depends(get_auth_service),
):
    return service.login(
        response,
        email=payload.email,
        password=payload.password,
        client=_client_host(request),
    )


@router.get("/logout", response_model=MessageResponse)
def logout(
    request: Request,
    response: Response,
    service: AuthenticationService = Depends(get_auth_service),
):
    service.logout(response, request)
    return {"message": "User logged out"}


@router.get("/login-status", response_model=bool)
def login_status(
    request: Request,
    service: AuthenticationService = Depends(get_auth_service),
) -> bool:
    return service.session_status(request)


@router.get("/user", response_model=AccountResponse)
def get_user(
    current: Principal = Depends(get_current_account),
    service: AuthenticationService = Depends(get_auth_service),
):
    return service.get_profile(current.id)


@router.patch("/user", response_model=AccountResponse)
def update_user(
    payload: ProfileUpdateRequest,
    current: Principal = Depends(get_current_account),
    service: AuthenticationService = Depends(get_auth_service),
):
    return service.update_profile(
        current.id,
        name=payload.name,
        bio=payload.bio,
        photo=payload.photo,
    )


@router.post("/verify-email", response_model=MessageResponse)
def verify_email(
    current: Principal = Depends(get_current_account),
    service: VerificationService = Depends(get_verification_service),
):
    service.request_email_verification(current.id)
    return {"message": "Email verification sent"}


@router.post("/verify-user/{token}", response_model=AccountResponse)
def verify_user(
    token: str,
    service: VerificationService = Depends(get_verification_service),
):
    return service.confirm_email_verification(token)


@router.post("/forgot-password", response_model=MessageResponse)
def forgot_password(
    payload: ForgotPasswordRequest,
    service: VerificationService = Depends(get_verification_service),
):
    service.request_password_reset(payload.email)
    return {"message": "If that account exists, a reset link has been sent"}


@router.post("/reset-password/{token}", response_model=MessageResponse)
def reset_password(
    token: str,
    payload: ResetPasswordRequest,
    service: VerificationService = Depends(get_verification_service),
):
    service.confirm_password_reset(token, payload.password)
    return {"message": "Password reset successfully"}


@router.patch("/change-password", response_model=MessageResponse)
def change_password(
    payload: ChangePasswordRequest,
    current: Principal = Depends(get_current_account),
    service: VerificationService = Depends(get_verification_service),
):
    service.change_password(current.id, payload.current_password, payload.new_password)
    return {"message": "Password changed successfully"}


@router.get("/users", response_model=List[AccountResponse])
def list_users(
    current: Principal = Depends(require_creator),
    service: AuthenticationService = Depends(get_auth_service),
):
    return service.list_accounts(current)


@router.delete("/admin/users/{account_id}", response_model=MessageResponse)
def delete_user(
    account_id: int,
    current: Principal = Depends(require_admin),
    service: AuthenticationService = Depends(get_auth_service),
):
    service.delete_account(current, account_id)
    return {"message": "User deleted successfully"}
