"""
Transaction Processing Module

Funding deposits and the per-account transaction history. Transactions are
append-only: inserted once, never updated or deleted. Each funding inserts its
transaction and applies the matching balance delta in one unit of work.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional
from enum import Enum

from .accounts import AccountManager
from .errors import InvalidStateError, ValidationError
from .instruments import FundingSource, validate_funding_source
from .logging_config import get_logger, log_action
from .money import (
    DEFAULT_MAX_FUNDING_MINOR_UNITS, AmountLike, format_amount, parse_funding_amount, to_decimal
)
from .storage import StorageInterface, StorageRecord

logger = get_logger(__name__)


class TransactionType(Enum):
    """Types of ledger entries"""
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"  # reserved for debit flows
    TRANSFER = "transfer"      # reserved for debit flows


class TransactionStatus(Enum):
    """States of a transaction"""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Transaction(StorageRecord):
    """
    Immutable ledger entry; amount is signed minor units
    """
    account_id: int
    transaction_type: TransactionType
    amount_minor: int
    description: str
    status: TransactionStatus
    processed_at: Optional[datetime] = None

    @property
    def amount(self) -> Decimal:
        return to_decimal(self.amount_minor)

    def to_public_dict(self) -> Dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "type": self.transaction_type.value,
            "amount": str(self.amount),
            "description": self.description,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
        }


@dataclass(frozen=True)
class FundingResult:
    """Outcome of a funding request"""
    transaction: Transaction
    new_balance_minor: int

    @property
    def new_balance(self) -> Decimal:
        return to_decimal(self.new_balance_minor)


class TransactionProcessor:
    """
    Applies deposits to accounts and serves transaction history
    """

    def __init__(self, storage: StorageInterface, account_manager: AccountManager,
                 max_funding_minor_units: int = DEFAULT_MAX_FUNDING_MINOR_UNITS):
        self.storage = storage
        self.account_manager = account_manager
        self.max_funding_minor_units = max_funding_minor_units
        self.table_name = "transactions"

    def fund(self, user_id: str, account_id: int, amount: AmountLike,
             funding_source: FundingSource) -> FundingResult:
        """
        Deposit into an account from an external funding source

        Args:
            user_id: Authenticated caller
            account_id: Account to credit; must belong to the caller
            amount: Decimal amount, at least 0.01
            funding_source: Card or bank instrument

        Returns:
            The created transaction and the balance produced by this deposit

        Raises:
            NotFoundError: account missing or owned by someone else
            InvalidStateError: account not active
            ValidationError: rejected instrument, or amount below minimum or above maximum
        """
        account = self.account_manager.get_owned_account(user_id, account_id)
        if not account.is_active:
            raise InvalidStateError("Account is not active")

        rejection = validate_funding_source(funding_source)
        if rejection:
            raise ValidationError(rejection.message, reason=rejection)

        amount_minor = parse_funding_amount(amount, self.max_funding_minor_units)

        with self.storage.atomic():
            now = datetime.now(timezone.utc)
            transaction = Transaction(
                id=self.storage.next_id(self.table_name),
                created_at=now,
                account_id=account.id,
                transaction_type=TransactionType.DEPOSIT,
                amount_minor=amount_minor,
                description=f"Funding from {funding_source.type.value}",
                status=TransactionStatus.COMPLETED,
                processed_at=now
            )
            self.storage.insert(self.table_name, str(transaction.id), transaction.to_dict())
            new_balance_minor = self.storage.increment(
                self.account_manager.accounts_table, str(account.id), "balance_minor", amount_minor
            )

        log_action(
            logger, "info", f"Account funded with {format_amount(amount_minor)}",
            user_id=user_id, action="fund_account", resource="accounts",
            extra={"account_id": account.id, "transaction_id": transaction.id,
                   "source_type": funding_source.type.value}
        )
        return FundingResult(transaction=transaction, new_balance_minor=new_balance_minor)

    def list_transactions(self, user_id: str, account_id: int) -> List[Transaction]:
        """Transactions for an owned account, newest first; same-instant ties by id descending"""
        account = self.account_manager.get_owned_account(user_id, account_id)
        records = self.storage.find_ordered(
            self.table_name, {"account_id": account.id}, ["created_at", "id"], descending=True
        )
        return [self._transaction_from_dict(data) for data in records]

    def _transaction_from_dict(self, data: Dict) -> Transaction:
        """Convert dictionary to Transaction"""
        processed_at = None
        if data.get('processed_at'):
            processed_at = datetime.fromisoformat(data['processed_at'])

        return Transaction(
            id=int(data['id']),
            created_at=datetime.fromisoformat(data['created_at']),
            account_id=data['account_id'],
            transaction_type=TransactionType(data['transaction_type']),
            amount_minor=data['amount_minor'],
            description=data['description'],
            status=TransactionStatus(data['status']),
            processed_at=processed_at
        )
