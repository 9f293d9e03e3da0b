"""HTTP routes for the session owner."""

from fastapi import APIRouter, Request, Response

from auth.session import SessionManager
from api.base import success_response
from api.deps import resolve_caller
from core.services.profile_service import ProfileService


def create_auth_router(session_manager: SessionManager, profile_service: ProfileService) -> APIRouter:
    """Create auth router with injected dependencies."""
    router = APIRouter(tags=["auth"])

    @router.post("/logout")
    async def logout(request: Request, response: Response):
        """Revoke the session and clear the cookie."""
        session_token = request.cookies.get("session_token")
        if session_token:
            session_manager.revoke_session(session_token)

        response.delete_cookie(key="session_token")
        return success_response({"message": "Logged out successfully"}, request)

    @router.get("/me")
    async def get_current_user(request: Request):
        """The caller's profile, with role and approval flag."""
        caller = resolve_caller(request, profile_service)
        return success_response({
            "user_id": str(caller.user_id),
            "profile": caller.model_dump(mode="json"),
            "session_expires_at": request.state.session.expires_at.isoformat(),
        }, request)

    return router
