"""
Session Authentication Module

Issues, resolves and revokes bearer sessions. Policy:

- a user has at most one live session; issuing a new one deletes the others
  in the same unit of work
- a session is rejected (and deleted) once its stored expiry is at or before
  now + the safety buffer, so it cannot lapse while a request is in flight
- revocation deletes the row; there is no soft-revoked state

Tokens are JWTs carrying the user id (``sub``) and the session id (``jti``);
only a SHA-256 hash of the token is persisted.
"""

import hashlib
import hmac
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

import jwt

from .config import BankingConfig
from .errors import AuthenticationFailure, UnconfiguredError
from .logging_config import get_logger, log_action
from .storage import StorageInterface, StorageRecord
from .users import User, UserManager

logger = get_logger(__name__)

DEFAULT_VALIDITY = timedelta(hours=24)
DEFAULT_EXPIRY_BUFFER = timedelta(seconds=60)
# HS256 keys shorter than the digest size are weak
MIN_SECRET_BYTES = 32

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


class TokenSigner:
    """Signing capability: HMAC-signed JWTs"""

    def __init__(self, secret: str, algorithm: str = "HS256"):
        if not secret:
            raise UnconfiguredError("JWT secret is not configured; set BANKING_JWT_SECRET")
        if len(secret.encode('utf-8')) < MIN_SECRET_BYTES:
            logger.warning(f"JWT secret is shorter than {MIN_SECRET_BYTES} bytes")
        self._secret = secret
        self.algorithm = algorithm

    def sign(self, claims: Dict[str, Any], validity: timedelta, now: Optional[datetime] = None) -> str:
        now = now or utc_now()
        payload = dict(claims, iat=now, exp=now + validity)
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def verify(self, token: str) -> Dict[str, Any]:
        """Return the claims of a valid token"""
        try:
            return jwt.decode(token, self._secret, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            raise AuthenticationFailure("Token expired")
        except jwt.InvalidTokenError:
            raise AuthenticationFailure("Invalid token")


@dataclass
class Session(StorageRecord):
    """One authenticated login"""
    user_id: str
    expires_at: datetime
    token: Optional[str] = field(default=None, repr=False)  # only known at issue time

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "token_hash": hash_token(self.token) if self.token else None,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
        }


class SessionAuthority:
    """
    Session state machine: NoSession -> Active -> {Revoked, Expired}
    """

    def __init__(
        self,
        storage: StorageInterface,
        signer: TokenSigner,
        validity: timedelta = DEFAULT_VALIDITY,
        expiry_buffer: timedelta = DEFAULT_EXPIRY_BUFFER,
        clock: Clock = utc_now
    ):
        self.storage = storage
        self.signer = signer
        self.validity = validity
        self.expiry_buffer = expiry_buffer
        self.clock = clock
        self.table_name = "sessions"

    def issue(self, user_id: str, validity: Optional[timedelta] = None) -> Session:
        """Create a session for the user, replacing any existing one"""
        validity = validity or self.validity
        now = self.clock()
        session_id = str(uuid.uuid4())
        token = self.signer.sign({"sub": user_id, "jti": session_id}, validity, now=now)

        session = Session(
            id=session_id,
            created_at=now,
            user_id=user_id,
            expires_at=now + validity,
            token=token
        )

        with self.storage.atomic():
            replaced = self._delete_user_sessions(user_id)
            self.storage.insert(self.table_name, session.id, session.to_dict())

        log_action(
            logger, "info", "Session issued",
            user_id=user_id, action="issue_session", resource="sessions",
            extra={"session_id": session.id, "replaced": replaced}
        )
        return session

    def resolve(self, token: str) -> str:
        """
        Resolve a bearer token to its user id.

        Raises:
            AuthenticationFailure: bad signature, unknown or replaced session,
                owner mismatch, or expiry inside the safety buffer
        """
        if not token:
            raise AuthenticationFailure("Not authenticated")

        claims = self.signer.verify(token)
        user_id = claims.get("sub")
        session_id = claims.get("jti")
        if not user_id or not session_id:
            raise AuthenticationFailure("Invalid token")

        data = self.storage.load(self.table_name, session_id)
        if not data:
            logger.info("Rejected token for unknown or revoked session")
            raise AuthenticationFailure("Not authenticated")

        if data["user_id"] != user_id or not hmac.compare_digest(data.get("token_hash") or "", hash_token(token)):
            logger.warning("Rejected token that does not match its session row")
            raise AuthenticationFailure("Not authenticated")

        expires_at = datetime.fromisoformat(data["expires_at"])
        if expires_at <= self.clock() + self.expiry_buffer:
            self.storage.delete(self.table_name, session_id)
            log_action(
                logger, "info", "Session expired",
                user_id=user_id, action="expire_session", resource="sessions",
                extra={"session_id": session_id}
            )
            raise AuthenticationFailure("Session expired")

        return user_id

    def resolve_or_none(self, token: Optional[str]) -> Optional[str]:
        """Like resolve, but unauthenticated callers get None"""
        try:
            return self.resolve(token)
        except AuthenticationFailure:
            return None

    def revoke(self, token: str) -> bool:
        """Delete the session behind a token (logout)"""
        try:
            claims = self.signer.verify(token)
        except AuthenticationFailure:
            return False

        session_id = claims.get("jti")
        data = self.storage.load(self.table_name, session_id) if session_id else None
        if not data or not hmac.compare_digest(data.get("token_hash") or "", hash_token(token)):
            return False

        revoked = self.storage.delete(self.table_name, session_id)
        if revoked:
            log_action(
                logger, "info", "Session revoked",
                user_id=data["user_id"], action="revoke_session", resource="sessions",
                extra={"session_id": session_id}
            )
        return revoked

    def revoke_all(self, user_id: str) -> int:
        """Delete every session owned by a user"""
        with self.storage.atomic():
            return self._delete_user_sessions(user_id)

    def _delete_user_sessions(self, user_id: str) -> int:
        removed = 0
        for data in self.storage.find(self.table_name, {"user_id": user_id}):
            if self.storage.delete(self.table_name, data["id"]):
                removed += 1
        return removed


@dataclass(frozen=True)
class AuthResult:
    """A user together with the session just issued for them"""
    user: User
    session: Session

    @property
    def token(self) -> str:
        return self.session.token


class AuthService:
    """
    Signup and login flows on top of UserManager and SessionAuthority
    """

    def __init__(self, user_manager: UserManager, session_authority: SessionAuthority):
        self.user_manager = user_manager
        self.sessions = session_authority

    def signup(self, **user_fields) -> AuthResult:
        """Create a user and log them in"""
        user = self.user_manager.create_user(**user_fields)
        return AuthResult(user=user, session=self.sessions.issue(user.id))

    def login(self, email: str, password: str) -> AuthResult:
        """Verify credentials and issue a session, replacing any previous one"""
        user = self.user_manager.verify_credentials(email, password)
        if not user:
            log_action(logger, "warning", "Login failed", action="login_failed", resource="auth")
            raise AuthenticationFailure("Invalid credentials")
        return AuthResult(user=user, session=self.sessions.issue(user.id))

    def logout(self, token: str) -> bool:
        return self.sessions.revoke(token)

    def current_user(self, token: str) -> User:
        """Resolve a token to the full user record"""
        user = self.user_manager.get_user(self.sessions.resolve(token))
        if not user:
            raise AuthenticationFailure("Not authenticated")
        return user


def create_session_authority(storage: StorageInterface, config: BankingConfig,
                             clock: Optional[Clock] = None) -> SessionAuthority:
    """Build a SessionAuthority from configuration"""
    return SessionAuthority(
        storage,
        TokenSigner(config.jwt_secret, config.jwt_algorithm),
        validity=timedelta(minutes=config.session_validity_minutes),
        expiry_buffer=timedelta(seconds=config.session_expiry_buffer_seconds),
        clock=clock or utc_now
    )
