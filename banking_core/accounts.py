"""
Account Management Module

Deposit accounts (checking and savings), one per type per user. Balances are
integer minor units; they change only through storage-level increments issued
by the transaction processor.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List
from enum import Enum
import secrets

from .errors import AccountNumberExhaustedError, ConflictError, NotFoundError
from .logging_config import get_logger, log_action
from .money import to_decimal
from .storage import StorageInterface, StorageRecord

logger = get_logger(__name__)

ACCOUNT_NUMBER_DIGITS = 10
ACCOUNT_NUMBER_RANGE = 10 ** 9
DEFAULT_MAX_ATTEMPTS = 100


class AccountType(Enum):
    """Deposit product types"""
    CHECKING = "checking"
    SAVINGS = "savings"


class AccountStatus(Enum):
    """Account lifecycle states"""
    ACTIVE = "active"
    INACTIVE = "inactive"


@dataclass
class Account(StorageRecord):
    """
    Deposit account owned by a single user
    """
    user_id: str
    account_number: str
    account_type: AccountType
    balance_minor: int = 0
    status: AccountStatus = AccountStatus.ACTIVE

    @property
    def balance(self) -> Decimal:
        """Balance in the decimal currency unit"""
        return to_decimal(self.balance_minor)

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE

    def to_public_dict(self) -> Dict:
        """API representation; balance crosses the boundary as a decimal string"""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "account_number": self.account_number,
            "account_type": self.account_type.value,
            "balance": str(self.balance),
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
        }


def generate_account_number() -> str:
    """Random 10-digit, zero-padded account number from a CSPRNG"""
    return str(secrets.randbelow(ACCOUNT_NUMBER_RANGE)).zfill(ACCOUNT_NUMBER_DIGITS)


class AccountManager:
    """
    Manages account creation and ownership lookups
    """

    def __init__(self, storage: StorageInterface, max_number_attempts: int = DEFAULT_MAX_ATTEMPTS,
                 number_generator=generate_account_number):
        self.storage = storage
        self.max_number_attempts = max_number_attempts
        self._generate_number = number_generator
        self.accounts_table = "accounts"
        self.numbers_table = "account_numbers"

    def create_account(self, user_id: str, account_type: AccountType) -> Account:
        """
        Create a new account for a user

        Args:
            user_id: ID of the account owner
            account_type: checking or savings

        Returns:
            Created Account with a zero balance

        Raises:
            ConflictError: user already has an account of this type
            AccountNumberExhaustedError: no unique number within the retry cap
        """
        with self.storage.atomic():
            existing = self.storage.find(
                self.accounts_table, {"user_id": user_id, "account_type": account_type.value}
            )
            if existing:
                raise ConflictError(f"You already have a {account_type.value} account")

            account_id = self.storage.next_id(self.accounts_table)
            account_number = self._reserve_account_number(account_id)

            account = Account(
                id=account_id,
                created_at=datetime.now(timezone.utc),
                user_id=user_id,
                account_number=account_number,
                account_type=account_type
            )
            self.storage.insert(self.accounts_table, str(account.id), self._account_to_dict(account))

        log_action(
            logger, "info", "Account created",
            user_id=user_id, action="create_account", resource="accounts",
            extra={"account_id": account.id, "account_type": account_type.value}
        )
        return account

    def list_accounts(self, user_id: str) -> List[Account]:
        """Get all accounts for a user, oldest first"""
        records = self.storage.find_ordered(self.accounts_table, {"user_id": user_id}, ["id"])
        return [self._account_from_dict(data) for data in records]

    def get_owned_account(self, user_id: str, account_id: int) -> Account:
        """Load an account, treating accounts owned by others as missing"""
        data = self.storage.load(self.accounts_table, str(account_id))
        if not data or data.get("user_id") != user_id:
            raise NotFoundError("Account not found")
        return self._account_from_dict(data)

    def get_balance(self, account_id: int) -> int:
        """Current balance in minor units, read from storage"""
        data = self.storage.load(self.accounts_table, str(account_id))
        if not data:
            raise NotFoundError("Account not found")
        return data["balance_minor"]

    def update_status(self, account_id: int, status: AccountStatus) -> Account:
        """Change account status; balance is left to storage increments"""
        with self.storage.atomic():
            data = self.storage.load(self.accounts_table, str(account_id))
            if not data:
                raise NotFoundError("Account not found")
            data["status"] = status.value
            self.storage.save(self.accounts_table, str(account_id), data)

        log_action(
            logger, "info", f"Account status set to {status.value}",
            user_id=data["user_id"], action="update_account_status", resource="accounts",
            extra={"account_id": account_id}
        )
        return self._account_from_dict(data)

    def _reserve_account_number(self, account_id: int) -> str:
        """Claim a unique account number; the reservation insert is the uniqueness check"""
        for attempt in range(1, self.max_number_attempts + 1):
            candidate = self._generate_number()
            try:
                self.storage.insert(self.numbers_table, candidate, {"id": candidate, "account_id": account_id})
                return candidate
            except ConflictError:
                logger.debug("Account number collision on attempt %d", attempt)

        logger.error("No unique account number after %d attempts", self.max_number_attempts)
        raise AccountNumberExhaustedError(
            f"Could not generate a unique account number after {self.max_number_attempts} attempts"
        )

    def _account_to_dict(self, account: Account) -> Dict:
        """Convert Account to dictionary for storage"""
        return account.to_dict()

    def _account_from_dict(self, data: Dict) -> Account:
        """Convert dictionary to Account"""
        return Account(
            id=int(data['id']),
            created_at=datetime.fromisoformat(data['created_at']),
            user_id=data['user_id'],
            account_number=data['account_number'],
            account_type=AccountType(data['account_type']),
            balance_minor=data['balance_minor'],
            status=AccountStatus(data['status'])
        )
