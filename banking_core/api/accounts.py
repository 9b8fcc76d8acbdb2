"""
Account management and funding endpoints
"""

from fastapi import APIRouter, Depends, status

from .auth import BankingSystem, get_banking_system, get_current_user_id
from .schemas import (
    AccountListResponse, CreateAccountRequest, FundAccountRequest,
    FundAccountResponse, TransactionListResponse
)
from ..accounts import AccountType


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
def create_account(
    request: CreateAccountRequest,
    user_id: str = Depends(get_current_user_id),
    system: BankingSystem = Depends(get_banking_system)
):
    """Open a checking or savings account for the caller"""
    account = system.account_manager.create_account(user_id, AccountType(request.account_type))
    return account.to_public_dict()


@router.get("", response_model=AccountListResponse)
def list_accounts(
    user_id: str = Depends(get_current_user_id),
    system: BankingSystem = Depends(get_banking_system)
):
    accounts = system.account_manager.list_accounts(user_id)
    return AccountListResponse(accounts=[account.to_public_dict() for account in accounts])


@router.get("/{account_id}")
def get_account(
    account_id: int,
    user_id: str = Depends(get_current_user_id),
    system: BankingSystem = Depends(get_banking_system)
):
    """Get account details"""
    return system.account_manager.get_owned_account(user_id, account_id).to_public_dict()


@router.post("/{account_id}/fund", response_model=FundAccountResponse)
def fund_account(
    account_id: int,
    request: FundAccountRequest,
    user_id: str = Depends(get_current_user_id),
    system: BankingSystem = Depends(get_banking_system)
):
    """Deposit into an account from a card or bank funding source"""
    result = system.transaction_processor.fund(
        user_id, account_id, request.amount, request.funding_source.to_funding_source()
    )
    return FundAccountResponse(
        transaction=result.transaction.to_public_dict(),
        new_balance=str(result.new_balance)
    )


@router.get("/{account_id}/transactions", response_model=TransactionListResponse)
def list_transactions(
    account_id: int,
    user_id: str = Depends(get_current_user_id),
    system: BankingSystem = Depends(get_banking_system)
):
    """Transaction history, newest first"""
    transactions = system.transaction_processor.list_transactions(user_id, account_id)
    return TransactionListResponse(
        transactions=[transaction.to_public_dict() for transaction in transactions]
    )
