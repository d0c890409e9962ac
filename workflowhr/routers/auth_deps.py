"""
Identity dependencies.

Tokens are issued by the identity collaborator; the core only verifies the
signature and reads {sub, role, company_id}. Coarse role checks live here,
company isolation is enforced by the services.
"""
import logging
from typing import Callable, List

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError

from workflowhr.core.config import settings
from workflowhr.core.exceptions import AuthenticationError, AccessDeniedError
from workflowhr.models.user import UserRole, HR_ROLES
from workflowhr.schemas.auth import Actor

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def decode_access_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.auth.secret_key, algorithms=[settings.auth.algorithm])
    except JWTError as e:
        logger.warning(f"Authentication failed: invalid token ({e})")
        raise AuthenticationError() from e


def get_current_actor(token: str = Depends(oauth2_scheme)) -> Actor:
    """
    Extracts the acting user from the bearer token.
    """
    if not token:
        raise AuthenticationError("Not authenticated")

    payload = decode_access_token(token)
    user_id = payload.get("sub")
    role = payload.get("role")
    company_id = payload.get("company_id")
    if user_id is None or role is None or company_id is None:
        logger.warning("Authentication failed: token is missing identity claims")
        raise AuthenticationError("Token is missing identity claims")

    try:
        return Actor(user_id=int(user_id), role=UserRole(role), company_id=int(company_id))
    except ValueError as e:
        logger.warning(f"Authentication failed: malformed identity claims ({e})")
        raise AuthenticationError("Malformed identity claims") from e


def require_role(allowed_roles: List[UserRole]) -> Callable:
    """
    Dependency factory that checks if the actor has one of the allowed roles.

    Usage:
        @router.get("/hr-only")
        def hr_endpoint(actor: Actor = Depends(require_role(list(HR_ROLES)))):
            ...
    """
    def role_checker(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in allowed_roles:
            raise AccessDeniedError(f"Access denied. Required roles: {[r.value for r in allowed_roles]}")
        return actor
    return role_checker


def require_hr():
    """Shorthand for requiring any HR-tier role."""
    return require_role(list(HR_ROLES))


def require_team_lead():
    return require_role([UserRole.TEAM_LEAD])
