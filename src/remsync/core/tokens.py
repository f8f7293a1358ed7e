"""Bearer token inspection.

Claims are read WITHOUT verifying the token signature: the signing key is
not available to clients.  Use the result for display and for building
discovery requests only, never for authorisation decisions.
"""

import json
from typing import Any

from jose import jwt
from jose.exceptions import JWTError

from remsync.errors import TokenError


def decode_claims(token: str) -> dict[str, Any]:
    """Return the unverified claims of a JWT.

    Raises:
        TokenError: If *token* is not a well-formed JWT.
    """
    try:
        claims = jwt.get_unverified_claims(token.strip())
    except JWTError as exc:
        raise TokenError(f"Cannot decode token: {exc}") from exc
    if not isinstance(claims, dict):
        raise TokenError("Token claims are not a JSON object")
    return claims


def render_token(token: str) -> str:
    """Pretty-print the claims of *token*."""
    return json.dumps(decode_claims(token), indent=2, sort_keys=True)


def auth0_user_id(claims: dict[str, Any]) -> str:
    """Extract the auth0 user id used to pick a storage group.

    User tokens carry it as ``auth0-profile.UserID``; device tokens as
    ``auth0-userid``.

    Raises:
        TokenError: If neither claim is present.
    """
    profile = claims.get("auth0-profile")
    if isinstance(profile, dict) and profile.get("UserID"):
        return str(profile["UserID"])
    if claims.get("auth0-userid"):
        return str(claims["auth0-userid"])
    raise TokenError("Token has no auth0 user id claim")
