"""JWT access token validation (ES256).

Token issuance belongs to the identity provider; create_access_token
exists for tests and local scripts that need a valid bearer token.
The token subject is the numeric user id.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from lms.core.config import SETTINGS

ALGORITHM = "ES256"
ISSUER = "lms"
AUDIENCE = "lms-api"
ACCESS_TOKEN_TTL_MIN = 15


def _load_keys() -> tuple[ec.EllipticCurvePrivateKey | None, ec.EllipticCurvePublicKey]:
    # JWT_PUBLIC_KEY_PEM: verify tokens minted elsewhere.  Unset: ephemeral
    # key pair for dev/test, so only tokens minted by this process verify.
    pem = SETTINGS.jwt_public_key_pem
    if pem:
        public = serialization.load_pem_public_key(pem.encode())
        if not isinstance(public, ec.EllipticCurvePublicKey):
            raise ValueError("JWT_PUBLIC_KEY_PEM must be an EC (P-256) public key")
        return None, public
    private = ec.generate_private_key(ec.SECP256R1())
    return private, private.public_key()


_private_key, _public_key = _load_keys()


def create_access_token(*, sub: str, roles: list[str] | None = None) -> str:
    """Sign an access token with the local key (dev/test only)."""
    if _private_key is None:
        raise RuntimeError("no signing key: JWT_PUBLIC_KEY_PEM is set")
    now = datetime.now(UTC)
    payload = {
        "sub": sub,
        "iss": ISSUER,
        "aud": AUDIENCE,
        "exp": now + timedelta(minutes=ACCESS_TOKEN_TTL_MIN),
        "iat": now,
        "jti": str(uuid.uuid4()),
        "roles": roles or ["student"],
    }
    return jwt.encode(payload, _private_key, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verify signature and claims, return the payload.

    Pins the algorithm to ES256 so alg:none and alg-switching tokens are
    rejected.  Raises jwt.ExpiredSignatureError / jwt.InvalidTokenError.
    """
    return jwt.decode(
        token,
        _public_key,
        algorithms=[ALGORITHM],
        issuer=ISSUER,
        audience=AUDIENCE,
        options={"require": ["sub", "exp", "iat", "jti"]},
    )
