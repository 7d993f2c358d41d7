"""
Actor context and role gating for the JSON API.

Token issuance lives outside this service; here we only verify the bearer
token and turn its claims into an ActorContext that services trust.
"""
from dataclasses import dataclass, field
from functools import wraps
import logging
from typing import FrozenSet, Optional

from flask import g, jsonify, request
from flask_jwt_extended import get_jwt, get_jwt_identity, verify_jwt_in_request

from models import UserRole

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActorContext:
    """Who is calling, as far as the services are concerned"""
    user_id: Optional[int]
    roles: FrozenSet[UserRole] = field(default_factory=frozenset)
    driver_id: Optional[int] = None
    email: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    request_id: Optional[str] = None

    def has_role(self, *roles: UserRole) -> bool:
        return any(role in self.roles for role in roles)

    @classmethod
    def system(cls):
        """Context for CLI and maintenance jobs"""
        return cls(user_id=None, roles=frozenset({UserRole.ADMIN}), email='system')


def _parse_roles(raw) -> FrozenSet[UserRole]:
    if isinstance(raw, str):
        raw = [raw]
    roles = set()
    for value in raw or []:
        text = str(value).strip()
        for role in UserRole:
            if text.upper() == role.name or text.lower() == role.value:
                roles.add(role)
    return frozenset(roles)


def _optional_int(value) -> Optional[int]:
    if value is None or value == '':
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def get_actor_context() -> ActorContext:
    """Build the actor context from the verified JWT and the current request"""
    claims = get_jwt()
    return ActorContext(
        user_id=_optional_int(get_jwt_identity()),
        roles=_parse_roles(claims.get('roles') or claims.get('role')),
        driver_id=_optional_int(claims.get('driver_id')),
        email=claims.get('email'),
        ip_address=request.headers.get('X-Forwarded-For', request.remote_addr),
        user_agent=request.headers.get('User-Agent'),
        request_id=getattr(g, 'correlation_id', None),
    )


def roles_required(*roles: UserRole):
    """Require a valid token carrying at least one of the given roles.

    The resulting ActorContext is stored on ``g.actor``.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            verify_jwt_in_request()
            actor = get_actor_context()
            if not actor.has_role(*roles):
                logger.warning(f"Access denied for user {actor.user_id} on {request.path}")
                return jsonify({
                    'success': False,
                    'error': 'ACCESS_DENIED',
                    'message': 'Access denied - insufficient role'
                }), 403
            g.actor = actor
            return f(*args, **kwargs)
        return decorated_function
    return decorator
