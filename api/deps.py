"""Per-request caller resolution."""

from starlette.requests import Request

from auth.exceptions import ProfileMissingError
from core.capabilities import Capabilities, capabilities_for
from core.models import Profile
from core.services import Services
from core.services.profile_service import ProfileService


def resolve_caller(request: Request, profile_service: ProfileService) -> Profile:
    """
    The signed-in caller's profile.

    Raises:
        ProfileMissingError: Session is valid but no profile was provisioned
    """
    user_id = request.state.user_id
    profile = profile_service.find(user_id)
    if profile is None:
        raise ProfileMissingError(f"No profile for user {user_id}")
    return profile


def resolve_capabilities(request: Request, services: Services) -> Capabilities:
    return capabilities_for(resolve_caller(request, services.profiles), services)
