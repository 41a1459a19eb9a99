"""
Authentication dependencies for FastAPI.

Resolves the actor context (actor ID and role) of a request from its bearer
token. Which appointments an actor may touch is decided by the booking core,
not here.
"""

import logging
from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from core.constants import ROLE_ADMIN, ROLE_AGENT, ROLE_ALIASES, ROLE_CUSTOMER
from services.jwt_service import jwt_service, TokenPayload

logger = logging.getLogger(__name__)


class ActorContext:
    """Authenticated actor extracted from JWT token."""

    def __init__(self, actor_id: int, role: str):
        self.actor_id = actor_id
        self.role = ROLE_ALIASES.get(role.lower(), role.lower())  # "staff" acts as "agent"

    def is_customer(self) -> bool:
        return self.role == ROLE_CUSTOMER

    def is_agent(self) -> bool:
        return self.role == ROLE_AGENT

    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def __repr__(self) -> str:
        return f"ActorContext(actor_id={self.actor_id}, role='{self.role}')"


# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


def get_token_payload(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Optional[TokenPayload]:
    """Extract and validate JWT token payload."""
    if not credentials:
        return None
    return jwt_service.verify_token(credentials.credentials)


def get_current_actor(payload: Optional[TokenPayload] = Depends(get_token_payload)) -> ActorContext:
    """Get authenticated actor context from JWT token."""
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication credentials not provided"
        )
    return ActorContext(actor_id=payload.actor_id, role=payload.role)


def require_customer_role(actor: ActorContext = Depends(get_current_actor)) -> ActorContext:
    """Require customer role."""
    if not actor.is_customer():
        logger.warning(f"Actor {actor.actor_id} with role {actor.role} tried a customer-only action")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Customer access required"
        )
    return actor
