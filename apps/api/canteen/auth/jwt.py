import base64
import hashlib
import hmac
import json
import time
from typing import Any

from fastapi import HTTPException, status

from canteen.services.users_service import Identity


class IdentityTokenError(Exception):
    pass


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode().rstrip("=")


def _b64url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def _sign(signing_input: bytes, secret: str) -> str:
    return _b64url_encode(hmac.new(secret.encode(), signing_input, hashlib.sha256).digest())


def issue_identity_token(
    identity: Identity,
    secret: str,
    expires_in_s: int = 3600,
    extra_claims: dict[str, Any] | None = None,
) -> str:
    """Mint an HS256 token carrying the sign-in identity (used by tests and tooling)."""
    header = {"alg": "HS256", "typ": "JWT"}
    claims = {
        "sub": identity.uid,
        "email": identity.email,
        "name": identity.display_name,
        "picture": identity.photo_url,
        **(extra_claims or {}),
        "exp": int(time.time()) + expires_in_s,
    }
    encoded_header = _b64url_encode(json.dumps(header, separators=(",", ":")).encode())
    encoded_claims = _b64url_encode(json.dumps(claims, separators=(",", ":")).encode())
    signing_input = f"{encoded_header}.{encoded_claims}".encode()
    return f"{encoded_header}.{encoded_claims}.{_sign(signing_input, secret)}"


def decode_identity_token(token: str, secret: str) -> Identity:
    try:
        encoded_header, encoded_claims, encoded_signature = token.split(".")
    except ValueError as exc:
        raise IdentityTokenError("Malformed token") from exc

    signing_input = f"{encoded_header}.{encoded_claims}".encode()
    if not hmac.compare_digest(_sign(signing_input, secret), encoded_signature):
        raise IdentityTokenError("Invalid token signature")

    try:
        claims = json.loads(_b64url_decode(encoded_claims))
    except (ValueError, UnicodeDecodeError) as exc:
        raise IdentityTokenError("Malformed token claims") from exc

    exp = claims.get("exp")
    if not isinstance(exp, int) or exp < int(time.time()):
        raise IdentityTokenError("Expired token")

    uid = claims.get("sub")
    email = claims.get("email")
    if not isinstance(uid, str) or not isinstance(email, str) or "@" not in email:
        raise IdentityTokenError("Token is missing uid or email")

    return Identity(
        uid=uid,
        email=email,
        display_name=claims.get("name") or None,
        photo_url=claims.get("picture") or None,
    )


def auth_http_exception(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=message,
        headers={"WWW-Authenticate": "Bearer"},
    )
