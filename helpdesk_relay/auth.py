"""
Connection gatekeeper: handshake token verification and role assignment.

Verification has three outcomes (authenticated, anonymous, rejected), but
the connection policy never refuses a socket. Widget visitors are usually
anonymous, and a stale or invalid token must not cut a customer off from
support, so a rejected token is admitted as an anonymous customer.
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import jwt

logger = logging.getLogger(__name__)

ALGORITHMS = ["HS256"]


class AuthStatus(str, enum.Enum):
    AUTHENTICATED = "authenticated"
    ANONYMOUS = "anonymous"
    REJECTED = "rejected"


@dataclass
class AuthResult:
    status: AuthStatus
    role: str = "customer"
    identity: Optional[str] = None
    claims: Dict[str, Any] = field(default_factory=dict)
    reason: Optional[str] = None


@dataclass
class ConnectionIdentity:
    """What a connected socket is allowed to act as. Stored in the socket session."""
    role: str
    identity: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    department_id: Optional[str] = None

    def to_session(self) -> Dict[str, Any]:
        return {
            "role": self.role,
            "identity": self.identity,
            "name": self.name,
            "email": self.email,
            "departmentId": self.department_id,
        }


def decode_token(token: str, secret: str) -> Dict[str, Any]:
    """
    Verify signature and expiry of a handshake token.

    Raises:
        jwt.InvalidTokenError: on a bad signature, malformed token or expiry
    """
    return jwt.decode(token, secret, algorithms=ALGORITHMS)


def _claim(claims: Dict[str, Any], *names: str) -> Optional[str]:
    for name in names:
        value = claims.get(name)
        if value not in (None, ""):
            return str(value)
    return None


def resolve_claims(claims: Dict[str, Any]) -> AuthResult:
    """Map verified claims to a role and identity by the embedded type claim."""
    token_type = claims.get("type")

    if token_type == "agent":
        agent_id = _claim(claims, "id", "agentId")
        if agent_id:
            return AuthResult(AuthStatus.AUTHENTICATED, "agent", agent_id, claims)
    elif token_type == "admin":
        admin_id = _claim(claims, "id", "adminId")
        if admin_id:
            return AuthResult(AuthStatus.AUTHENTICATED, "admin", admin_id, claims)

    customer_id = _claim(claims, "id", "customerId")
    if customer_id:
        return AuthResult(AuthStatus.AUTHENTICATED, "customer", customer_id, claims)

    # Valid signature, unrecognised shape
    return AuthResult(AuthStatus.AUTHENTICATED, "customer", None, claims)


def authenticate(token: Optional[str], secret: str) -> AuthResult:
    """
    Verify an optional handshake token.

    Args:
        token: Bearer token from the handshake auth object, may be missing
        secret: Shared signing secret

    Returns:
        AuthResult, never raises
    """
    if not token:
        return AuthResult(AuthStatus.ANONYMOUS)

    if token.lower().startswith("bearer "):
        token = token[7:].strip()

    try:
        claims = decode_token(token, secret)
    except jwt.ExpiredSignatureError:
        return AuthResult(AuthStatus.REJECTED, reason="token expired")
    except jwt.InvalidTokenError as e:
        return AuthResult(AuthStatus.REJECTED, reason=f"invalid token: {e}")

    return resolve_claims(claims)


def admit(result: AuthResult) -> ConnectionIdentity:
    """
    Connection policy: every socket is admitted.

    Rejected tokens fall back to an anonymous customer so anonymous widget
    traffic is never blocked by auth problems.
    """
    if result.status is AuthStatus.REJECTED:
        logger.warning(f"Handshake token rejected ({result.reason}), continuing as anonymous customer")
        return ConnectionIdentity(role="customer")

    if result.status is AuthStatus.ANONYMOUS:
        return ConnectionIdentity(role="customer")

    claims = result.claims
    department_id = claims.get("departmentId")
    return ConnectionIdentity(
        role=result.role,
        identity=result.identity,
        name=claims.get("name"),
        email=claims.get("email"),
        department_id=str(department_id) if department_id is not None else None,
    )


def extract_token(auth: Any) -> Optional[str]:
    """Pull the token out of the Socket.IO handshake auth object."""
    if isinstance(auth, dict):
        token = auth.get("token")
        if isinstance(token, str):
            return token
    return None
