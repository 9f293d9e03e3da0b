"""Identity adapter: sessions for identities the provider authenticated."""

from auth.exceptions import AuthError, SessionExpiredError, ProfileMissingError
from auth.types import Session
from auth.config import AuthConfig, load_auth_config
from auth.session import SessionManager
from auth.security_middleware import AuthMiddleware
