"""
System wiring and authentication dependencies
"""

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..accounts import AccountManager
from ..config import BankingConfig
from ..encryption import EncryptedStorage, create_envelope_codec
from ..errors import AuthenticationFailure
from ..sessions import AuthService, Clock, create_session_authority
from ..storage import StorageInterface, create_storage
from ..transactions import TransactionProcessor
from ..users import UserManager


class BankingSystem:
    """Banking core with all components initialized"""

    def __init__(self, config: BankingConfig, storage: Optional[StorageInterface] = None,
                 clock: Optional[Clock] = None):
        self.config = config

        # Fails fast with UnconfiguredError when no encryption key is set
        self.codec = create_envelope_codec(config)

        self.storage = storage or create_storage(config.database_url)
        self.pii_storage = EncryptedStorage(self.storage, self.codec)

        self.user_manager = UserManager(self.pii_storage, min_age=config.min_signup_age)
        self.session_authority = create_session_authority(self.storage, config, clock)
        self.auth_service = AuthService(self.user_manager, self.session_authority)

        self.account_manager = AccountManager(
            self.storage, max_number_attempts=config.account_number_max_attempts
        )
        self.transaction_processor = TransactionProcessor(
            self.storage, self.account_manager,
            max_funding_minor_units=config.max_funding_minor_units
        )

    def close(self) -> None:
        self.storage.close()


security = HTTPBearer(auto_error=False)


def get_banking_system(request: Request) -> BankingSystem:
    return request.app.state.banking_system


def get_bearer_token(credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)) -> str:
    if not credentials:
        raise AuthenticationFailure("Not authenticated")
    return credentials.credentials


def get_current_user_id(
    token: str = Depends(get_bearer_token),
    system: BankingSystem = Depends(get_banking_system)
) -> str:
    """Dependency that resolves the bearer session to a user id"""
    return system.session_authority.resolve(token)
