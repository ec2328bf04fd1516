"""
auth/tokens.py -- Bearer credentials, password hashing, and the role-gated authorize().

Security design decisions:
  Credentials: HS256 signed tokens via python-jose. Wire shape is
       base64url(header).base64url(payload).base64url(hmac_sha256), payload
       {"sub", "iat", "exp"} with a 24h lifetime. Credentials are pure bearer
       tokens: no server-side session, no revocation list. Logout only flips
       the presence flag.

  Verification: the signature segment is recomputed over the supplied
       header.payload bytes and compared as encoded text with
       hmac.compare_digest. Comparing the text rather than decoded bytes
       means a flipped padding bit in the last base64 character is still a
       mismatch.

  Secret: injected by the caller (TokenAuthenticator.from_settings reads
       it once from core.config). An empty secret is a ConfigurationError at
       construction time -- there is no fallback key.

  Passwords: bcrypt directly (no passlib wrapper). _DUMMY_HASH equalizes
       timing so response time does not reveal whether an email exists.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import hmac
import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Protocol

import bcrypt
from jose import jwk, jwt
from jose.exceptions import JOSEError
from jose.utils import base64url_encode

from auth.errors import Expired, Forbidden, MalformedCredential, SignatureMismatch, Unauthenticated, UserNotFound
from auth.models import TokenCheck, User
from auth.roles import has_role
from core.config import ConfigurationError, Settings

if TYPE_CHECKING:
    from auth.presence import PresenceTracker
    from auth.store import UserStore

logger = logging.getLogger("scoutportal.auth")

ALGORITHM = "HS256"
DEFAULT_TTL_SECONDS = 24 * 60 * 60


class UserLookup(Protocol):
    def get_by_id(self, user_id: str) -> User | None: ...


# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt truncates input at 72 bytes; the API layer caps passwords at 128
    characters, and anything past the cap is rejected before it gets here.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash (e.g. a row imported without bcrypt).
        return False


# Computed once at import so the first login is not measurably slower.
_DUMMY_HASH: str = hash_password("scoutportal_timing_dummy")


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Check an email/password login with timing equalization.

    Always runs bcrypt whether or not the user exists:
    - Unknown email: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the User on success, None on any failure.
    """
    user = store.get_by_email(email)
    if user is None or not user.hashed_password:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user


# ---------------------------------------------------------------------------
# Credential issue / verify / authorize
# ---------------------------------------------------------------------------


class TokenAuthenticator:
    """Issues and validates bearer credentials and gates access by role.

    Stateless apart from the read-only secret, so one instance is shared by
    every request worker.

    Args:
        secret:      HMAC signing key. Must be non-empty.
        ttl_seconds: Credential lifetime; exp = iat + ttl_seconds.
        clock:       Zero-arg callable returning unix seconds. Tests inject a
                     fake clock to probe expiry boundaries.
        presence:    Optional heartbeat recorder, fed by authorize().
    """

    def __init__(
        self,
        secret: str,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
        presence: PresenceTracker | None = None,
    ) -> None:
        if not secret:
            raise ConfigurationError("Signing secret is not configured.")
        self._secret = secret
        self._key = jwk.construct(secret, algorithm=ALGORITHM)
        self._ttl = ttl_seconds
        self._clock = clock
        self.presence = presence

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        presence: PresenceTracker | None = None,
    ) -> TokenAuthenticator:
        return cls(settings.secret_key, ttl_seconds=settings.token_ttl_seconds, presence=presence)

    def _now(self) -> int:
        return int(self._clock())

    def issue(self, subject: str) -> str:
        """Return a signed credential asserting `subject` for the next ttl seconds."""
        if not subject:
            raise ValueError("subject must be a non-empty string")
        issued_at = self._now()
        claims = {"sub": subject, "iat": issued_at, "exp": issued_at + self._ttl}
        return jwt.encode(claims, self._secret, algorithm=ALGORITHM)

    def decode(self, token: str) -> str:
        """Validate a credential and return its subject.

        Raises MalformedCredential, SignatureMismatch, or Expired -- all
        Unauthenticated. Checks run in that order; expiry is only consulted
        once the signature is known to be genuine.
        """
        if not isinstance(token, str) or token.count(".") != 2:
            raise MalformedCredential("expected three dot-separated segments")

        try:
            header = jwt.get_unverified_header(token)
            claims = jwt.get_unverified_claims(token)
        except JOSEError as exc:
            raise MalformedCredential(str(exc)) from exc

        if header.get("alg") != ALGORITHM:
            raise MalformedCredential("unsupported algorithm")
        subject = claims.get("sub")
        expiry = claims.get("exp")
        if not isinstance(subject, str) or not subject:
            raise MalformedCredential("missing subject")
        if not isinstance(expiry, int) or isinstance(expiry, bool):
            raise MalformedCredential("missing expiry")

        signing_input, _, signature = token.rpartition(".")
        expected = base64url_encode(self._key.sign(signing_input.encode("utf-8"))).decode("ascii")
        if not hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8")):
            raise SignatureMismatch("signature does not match")

        if self._now() >= expiry:
            raise Expired("credential expired")
        return subject

    def verify(self, token: str) -> TokenCheck:
        """Return TokenCheck(valid, subject). Never raises on bad input."""
        try:
            subject = self.decode(token)
        except Unauthenticated as exc:
            logger.debug("Credential rejected: %s", type(exc).__name__)
            return TokenCheck(valid=False)
        return TokenCheck(valid=True, subject=subject)

    def authorize(self, token: str, required_role: str | None, user_lookup: UserLookup) -> User:
        """Resolve a credential to a User allowed to act as `required_role`.

        required_role=None authenticates without a role gate.

        Raises:
            Unauthenticated: credential invalid or expired.
            UserNotFound:    credential valid, subject has no user record.
            Forbidden:       user exists but fails the role gate.
        """
        check = self.verify(token)
        if not check.valid:
            raise Unauthenticated("invalid credential")

        user = user_lookup.get_by_id(check.subject)
        if user is None:
            raise UserNotFound(check.subject)

        if required_role is not None and not has_role(user, required_role):
            logger.info("User %s denied: requires %s", user.id, required_role)
            raise Forbidden(required_role)

        if self.presence is not None:
            self.presence.heartbeat(user.id)
        return user
