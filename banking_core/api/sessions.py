"""
Signup, login and logout endpoints
"""

from fastapi import APIRouter, Depends

from .auth import BankingSystem, get_banking_system, get_bearer_token
from .schemas import LoginRequest, SessionResponse, SignupRequest
from ..sessions import AuthResult


router = APIRouter()


def _session_response(result: AuthResult) -> SessionResponse:
    return SessionResponse(
        token=result.token,
        expires_at=result.session.expires_at.isoformat(),
        user=result.user.to_public_dict()
    )


@router.post("/signup", response_model=SessionResponse)
def signup(
    request: SignupRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Create a user and start their session"""
    result = system.auth_service.signup(**request.model_dump())
    return _session_response(result)


@router.post("/login", response_model=SessionResponse)
def login(
    request: LoginRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Log in, replacing any session the user already has"""
    result = system.auth_service.login(request.email, request.password)
    return _session_response(result)


@router.post("/logout")
def logout(
    token: str = Depends(get_bearer_token),
    system: BankingSystem = Depends(get_banking_system)
):
    return {"revoked": system.auth_service.logout(token)}


@router.get("/me")
def get_current_user(
    token: str = Depends(get_bearer_token),
    system: BankingSystem = Depends(get_banking_system)
):
    """Get the authenticated user's profile"""
    return system.auth_service.current_user(token).to_public_dict()
