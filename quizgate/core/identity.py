from typing import List, Optional

import jwt
from pydantic import BaseModel

from quizgate.core.config import settings
from quizgate.core.errors import InvalidToken
from quizgate.models.domain import AnonymousIdentity, AuthenticatedIdentity, Identity


class TokenData(BaseModel):
    sub: str
    roles: List[str] = []


def decode_token(token: str, secret: Optional[str] = None) -> TokenData:
    secret = secret or settings.SECRET_KEY.get_secret_value()
    try:
        payload = jwt.decode(token, secret, algorithms=[settings.ALGORITHM])
    except jwt.PyJWTError:
        raise InvalidToken() from None
    if not payload.get("sub"):
        raise InvalidToken("Token has no subject")
    return TokenData(sub=str(payload["sub"]), roles=payload.get("roles", []))


def resolve_identity(
    bearer_token: Optional[str] = None,
    anonymous_session_id: Optional[str] = None,
    anonymous_name: Optional[str] = None,
    anonymous_email: Optional[str] = None,
    secret: Optional[str] = None,
) -> Identity:
    """Resolve the caller to an authenticated user or an anonymous session."""
    if bearer_token:
        return AuthenticatedIdentity(user_id=decode_token(bearer_token, secret).sub)
    if anonymous_session_id and anonymous_session_id.strip():
        return AnonymousIdentity(
            session_id=anonymous_session_id.strip(),
            name=anonymous_name,
            email=anonymous_email,
        )
    raise InvalidToken("No credentials and no anonymous session")
