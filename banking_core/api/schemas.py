"""
Pydantic schemas for API requests and responses
"""

from typing import Dict, List, Literal, Optional, Union
from pydantic import BaseModel, Field, StrictFloat, StrictInt, StrictStr

from ..instruments import FundingSource, FundingSourceType


class SignupRequest(BaseModel):
    email: str
    password: str
    first_name: str
    last_name: str
    date_of_birth: str = Field(..., description="ISO date (YYYY-MM-DD)")
    national_id: str
    address: Optional[str] = None
    phone_number: Optional[str] = None


class LoginRequest(BaseModel):
    email: str
    password: str


class SessionResponse(BaseModel):
    token: str
    expires_at: str
    user: Dict


class CreateAccountRequest(BaseModel):
    account_type: Literal["checking", "savings"]


class FundingSourceModel(BaseModel):
    type: Literal["card", "bank"]
    account_number: str
    routing_number: Optional[str] = None

    def to_funding_source(self) -> FundingSource:
        return FundingSource(
            type=FundingSourceType(self.type),
            account_number=self.account_number,
            routing_number=self.routing_number
        )


class FundAccountRequest(BaseModel):
    amount: Union[StrictStr, StrictInt, StrictFloat] = Field(..., description="Decimal amount, e.g. \"10.25\"")
    funding_source: FundingSourceModel


class FundAccountResponse(BaseModel):
    transaction: Dict
    new_balance: str


class AccountListResponse(BaseModel):
    accounts: List[Dict]


class TransactionListResponse(BaseModel):
    transactions: List[Dict]
