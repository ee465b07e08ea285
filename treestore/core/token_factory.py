"""Pure functions for creating and decoding JWT user tokens.

No classes with behaviour, no state: just encode/decode. The decoded form is
a single typed ``TokenClaims`` value; nothing downstream inspects raw claim
dictionaries.
"""

import hashlib
import hmac
import base64
import json
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

_ISSUER = "treestore"


@dataclass(frozen=True)
class TokenClaims:
    """Decoded JWT payload. Immutable."""
    user_id: str
    username: str
    expires_at: datetime


def create_token(
    user_id: str,
    username: str,
    secret: str,
    algorithm: str = "HS256",
    expires_hours: int = 72,
) -> str:
    """Create a signed JWT token.

    Args:
        user_id: Token subject, the user's id.
        username: Carried for display and logging.
        secret: HMAC signing key.
        algorithm: Only HS256 supported.
        expires_hours: Hours until expiry.

    Returns:
        Encoded JWT string.
    """
    if algorithm != "HS256":
        raise ValueError(f"Unsupported algorithm: {algorithm}")

    now = time.time()
    payload = {
        "sub": user_id,
        "username": username,
        "iat": int(now),
        "exp": int(now + expires_hours * 3600),
        "iss": _ISSUER,
    }

    header = {"alg": "HS256", "typ": "JWT"}
    segments = [
        _b64encode(json.dumps(header).encode()),
        _b64encode(json.dumps(payload).encode()),
    ]
    signing_input = b".".join(segments)
    signature = hmac.new(secret.encode(), signing_input, hashlib.sha256).digest()
    segments.append(_b64encode(signature))
    return b".".join(segments).decode()


def decode_token(token: str, secret: str, algorithm: str = "HS256") -> Optional[TokenClaims]:
    """Decode and validate a JWT token.

    Returns ``None`` on any validation failure (bad signature, expired, malformed,
    missing subject) rather than raising: callers decide what to do with absence.
    """
    if algorithm != "HS256":
        return None
    try:
        parts = token.encode().split(b".")
        if len(parts) != 3:
            return None

        signing_input = parts[0] + b"." + parts[1]
        expected_sig = hmac.new(secret.encode(), signing_input, hashlib.sha256).digest()
        actual_sig = _b64decode(parts[2])

        if not hmac.compare_digest(expected_sig, actual_sig):
            return None

        payload = json.loads(_b64decode(parts[1]))
        if not isinstance(payload, dict):
            return None

        exp = payload.get("exp", 0)
        if not isinstance(exp, (int, float)) or time.time() > exp:
            return None

        user_id = payload.get("sub")
        username = payload.get("username", "")
        if not isinstance(user_id, str) or not user_id or not isinstance(username, str):
            return None

        return TokenClaims(
            user_id=user_id,
            username=username,
            expires_at=datetime.fromtimestamp(exp, tz=timezone.utc),
        )
    except (json.JSONDecodeError, KeyError, ValueError, IndexError):
        return None


# --- base64url helpers (no padding, URL-safe) ---

def _b64encode(data: bytes) -> bytes:
    return base64.urlsafe_b64encode(data).rstrip(b"=")


def _b64decode(data: bytes) -> bytes:
    padding = 4 - len(data) % 4
    if padding != 4:
        data += b"=" * padding
    return base64.urlsafe_b64decode(data)
