"""
User Identity Module

User records, signup validation (email, password policy, date of birth) and
credential verification. National ID and address are PII: the storage handed
to UserManager is expected to be an EncryptedStorage so they are envelopes at rest.
"""

import hashlib
import hmac
import re
import secrets
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Union

from .errors import ConflictError, ValidationError
from .logging_config import get_logger, log_action
from .storage import StorageInterface, StorageRecord

logger = get_logger(__name__)

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')
SPECIAL_CHARS = "!@#$%^&*()_+-=[]{}|;:,.<>?"
DEFAULT_MIN_AGE = 18


@dataclass
class PasswordPolicy:
    """Password policy configuration"""
    min_length: int = 8
    require_uppercase: bool = True
    require_lowercase: bool = True
    require_digit: bool = True
    require_special: bool = True

    def violations(self, password: str) -> List[str]:
        found = []
        if len(password) < self.min_length:
            found.append(f"Minimum length {self.min_length}")
        if self.require_uppercase and not any(c.isupper() for c in password):
            found.append("Must contain uppercase letter")
        if self.require_lowercase and not any(c.islower() for c in password):
            found.append("Must contain lowercase letter")
        if self.require_digit and not any(c.isdigit() for c in password):
            found.append("Must contain digit")
        if self.require_special and not any(c in SPECIAL_CHARS for c in password):
            found.append("Must contain special character")
        return found


@dataclass
class User(StorageRecord):
    """Bank customer identity"""
    email: str
    first_name: str
    last_name: str
    date_of_birth: date
    national_id: str
    address: Optional[str] = None
    phone_number: Optional[str] = None
    password_hash: Optional[str] = field(default=None, repr=False)
    password_salt: Optional[str] = field(default=None, repr=False)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def to_public_dict(self) -> Dict:
        """Fields safe to return to the account owner; no national ID or secrets"""
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "phone_number": self.phone_number,
            "date_of_birth": self.date_of_birth.isoformat(),
            "created_at": self.created_at.isoformat(),
        }


def _parse_date(value: Union[str, date, datetime]) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationError("Date of birth must be an ISO date (YYYY-MM-DD)")


def calculate_age(date_of_birth: date, today: date) -> int:
    """Whole years between date_of_birth and today"""
    age = today.year - date_of_birth.year
    # Adjust if birthday hasn't occurred this year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        age -= 1
    return age


def validate_date_of_birth(value: Union[str, date, datetime], min_age: int = DEFAULT_MIN_AGE,
                           today: Optional[date] = None) -> date:
    """Parse a date of birth; it must be in the past and at least min_age years ago"""
    dob = _parse_date(value)
    today = today or datetime.now(timezone.utc).date()
    if dob > today:
        raise ValidationError("Date of birth cannot be in the future")
    if calculate_age(dob, today) < min_age:
        raise ValidationError(f"You must be at least {min_age} years old")
    return dob


class UserManager:
    """
    Manages user signup and credential checks
    """

    def __init__(self, storage: StorageInterface, min_age: int = DEFAULT_MIN_AGE,
                 password_policy: Optional[PasswordPolicy] = None):
        self.storage = storage
        self.min_age = min_age
        self.password_policy = password_policy or PasswordPolicy()
        self.table_name = "users"
        self.emails_table = "user_emails"

    def create_user(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        date_of_birth: Union[str, date],
        national_id: str,
        address: Optional[str] = None,
        phone_number: Optional[str] = None
    ) -> User:
        """
        Create a new user

        Raises:
            ValidationError: bad email, weak password, or date of birth
            ConflictError: email already registered
        """
        email = (email or "").strip().lower()
        if not EMAIL_PATTERN.match(email):
            raise ValidationError("Invalid email format")

        violations = self.password_policy.violations(password or "")
        if violations:
            raise ValidationError(f"Password policy violations: {', '.join(violations)}")

        dob = validate_date_of_birth(date_of_birth, self.min_age)

        if not national_id or not national_id.strip():
            raise ValidationError("National ID is required")

        salt = secrets.token_hex(16)
        user = User(
            id=str(uuid.uuid4()),
            created_at=datetime.now(timezone.utc),
            email=email,
            first_name=first_name,
            last_name=last_name,
            date_of_birth=dob,
            national_id=national_id.strip(),
            address=address,
            phone_number=phone_number,
            password_hash=self._hash_password(password, salt),
            password_salt=salt
        )

        # The email reservation key makes the uniqueness check atomic
        with self.storage.atomic():
            try:
                self.storage.insert(self.emails_table, email, {"id": email, "user_id": user.id})
            except ConflictError:
                raise ConflictError("User already exists")
            self.storage.insert(self.table_name, user.id, user.to_dict())

        log_action(
            logger, "info", "User created",
            user_id=user.id, action="create_user", resource="users"
        )
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        """Get user by ID"""
        data = self.storage.load(self.table_name, user_id)
        if data:
            return self._user_from_dict(data)
        return None

    def get_user_by_email(self, email: str) -> Optional[User]:
        """Get user by email (case-insensitive)"""
        users = self.storage.find(self.table_name, {"email": (email or "").strip().lower()})
        if users:
            return self._user_from_dict(users[0])
        return None

    def verify_credentials(self, email: str, password: str) -> Optional[User]:
        """Return the user if the password matches, otherwise None"""
        user = self.get_user_by_email(email)
        if not user or not user.password_hash or not user.password_salt:
            return None
        expected = self._hash_password(password or "", user.password_salt)
        if not hmac.compare_digest(expected, user.password_hash):
            return None
        return user

    @staticmethod
    def _hash_password(password: str, salt: str) -> str:
        """Hash password with salt using scrypt"""
        return hashlib.scrypt(
            password.encode(),
            salt=salt.encode(),
            n=16384, r=8, p=1
        ).hex()

    def _user_from_dict(self, data: Dict) -> User:
        """Convert dictionary to User"""
        return User(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            email=data['email'],
            first_name=data['first_name'],
            last_name=data['last_name'],
            date_of_birth=date.fromisoformat(data['date_of_birth']),
            national_id=data['national_id'],
            address=data.get('address'),
            phone_number=data.get('phone_number'),
            password_hash=data.get('password_hash'),
            password_salt=data.get('password_salt')
        )
