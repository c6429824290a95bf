# shared/common/authentication.py
"""
JWT Authentication

Tokens are issued by the identity service; this side only verifies them
and exposes the claims as a lightweight principal.
"""

import jwt
import logging
from datetime import datetime, timezone
from typing import Optional, Dict, Any, Tuple
from django.conf import settings
from rest_framework import authentication, exceptions
from rest_framework.request import Request

logger = logging.getLogger(__name__)


STAFF_ROLES = {'admin', 'owner', 'manager', 'staff', 'instructor'}


class JWTAuthentication(authentication.BaseAuthentication):
    """
    JWT Token Authentication for API requests.
    Algorithm and keys come from ``settings.JWT_SETTINGS``.
    """

    keyword = 'Bearer'

    def authenticate(self, request: Request) -> Optional[Tuple[Any, Dict]]:
        auth_header = authentication.get_authorization_header(request)

        if not auth_header:
            return None

        try:
            auth_parts = auth_header.decode('utf-8').split()
        except UnicodeDecodeError:
            raise exceptions.AuthenticationFailed('Invalid token header encoding')

        if len(auth_parts) != 2:
            raise exceptions.AuthenticationFailed('Invalid token header format')

        if auth_parts[0].lower() != self.keyword.lower():
            return None

        return self.authenticate_token(auth_parts[1])

    def authenticate_token(self, token: str) -> Tuple[Any, Dict]:
        """Validate and decode JWT token"""
        jwt_settings = settings.JWT_SETTINGS
        try:
            payload = jwt.decode(
                token,
                jwt_settings['VERIFYING_KEY'],
                algorithms=[jwt_settings['ALGORITHM']],
                issuer=jwt_settings['ISSUER'],
                options={
                    'require': ['exp', 'iat', 'sub', 'iss'],
                    'verify_exp': True,
                    'verify_iat': True,
                    'verify_iss': True,
                }
            )
        except jwt.ExpiredSignatureError:
            raise exceptions.AuthenticationFailed('Token has expired')
        except jwt.InvalidTokenError as e:
            logger.warning(f"Invalid token: {e}")
            raise exceptions.AuthenticationFailed('Invalid token')

        return (TokenUser(payload), payload)

    def authenticate_header(self, request: Request) -> str:
        return self.keyword


class TokenUser:
    """
    User object created from JWT token payload.
    Provides a consistent interface for accessing user data.
    """

    def __init__(self, payload: Dict):
        self.payload = payload
        self.id = payload.get('sub')
        self.email = payload.get('email')
        self.organization_id = payload.get('organizationId') or payload.get('organization_id')
        self.roles = payload.get('roles', [])
        self.is_active = True
        self.is_authenticated = True
        self.is_anonymous = False

    def __str__(self) -> str:
        return f"TokenUser({self.id})"

    def has_role(self, role: str) -> bool:
        """Check if user has a specific role"""
        return role in self.roles

    def has_any_role(self, roles) -> bool:
        """Check if user has any of the specified roles"""
        return bool(set(self.roles) & set(roles))

    @property
    def is_staff_member(self) -> bool:
        return self.has_any_role(STAFF_ROLES)


def encode_token(
    user_id: str,
    organization_id: str,
    roles: list = None,
    lifetime=None,
    **claims
) -> str:
    """Sign a token with the local keys. Used by tooling and tests."""
    jwt_settings = settings.JWT_SETTINGS
    now = datetime.now(timezone.utc)

    payload = {
        'sub': str(user_id),
        'organizationId': str(organization_id),
        'roles': roles or [],
        'iat': now,
        'exp': now + (lifetime or jwt_settings['ACCESS_TOKEN_LIFETIME']),
        'iss': jwt_settings['ISSUER'],
        **claims,
    }

    return jwt.encode(
        payload,
        jwt_settings['SIGNING_KEY'],
        algorithm=jwt_settings['ALGORITHM']
    )
