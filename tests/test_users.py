"""
Tests for user identity: signup validation, uniqueness and credentials
"""

import threading
from datetime import date

import pytest

from banking_core.encryption import EncryptedStorage, EnvelopeCodec, is_envelope
from banking_core.errors import ConflictError, ValidationError
from banking_core.storage import InMemoryStorage
from banking_core.users import (
    PasswordPolicy, UserManager, calculate_age, validate_date_of_birth
)

VALID_PASSWORD = "Str0ng!Pass"


def signup_fields(**overrides):
    fields = {
        "email": "jane@example.com",
        "password": VALID_PASSWORD,
        "first_name": "Jane",
        "last_name": "Doe",
        "date_of_birth": "1990-05-17",
        "national_id": "123-45-6789",
        "address": "1 Main Street",
        "phone_number": "+15555550100",
    }
    fields.update(overrides)
    return fields


class TestDateOfBirth:
    """Test age rules"""

    def test_calculate_age(self):
        assert calculate_age(date(2000, 6, 15), date(2018, 6, 14)) == 17
        assert calculate_age(date(2000, 6, 15), date(2018, 6, 15)) == 18

    def test_leap_day_birthday(self):
        assert calculate_age(date(2004, 2, 29), date(2022, 2, 28)) == 17
        assert calculate_age(date(2004, 2, 29), date(2022, 3, 1)) == 18

    def test_adult_accepted(self):
        today = date(2024, 1, 1)
        assert validate_date_of_birth("2005-12-31", today=today) == date(2005, 12, 31)

    def test_minor_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_date_of_birth("2006-01-02", today=date(2024, 1, 1))
        assert exc_info.value.message == "You must be at least 18 years old"

    def test_future_date_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_date_of_birth("2030-01-01", today=date(2024, 1, 1))
        assert exc_info.value.message == "Date of birth cannot be in the future"

    def test_configurable_minimum(self):
        assert validate_date_of_birth("2008-01-01", min_age=16, today=date(2024, 1, 1))

    def test_unparseable(self):
        with pytest.raises(ValidationError):
            validate_date_of_birth("17/05/1990")


class TestPasswordPolicy:

    def test_strong_password(self):
        assert PasswordPolicy().violations(VALID_PASSWORD) == []

    def test_weak_password(self):
        violations = PasswordPolicy().violations("short")
        assert "Minimum length 8" in violations
        assert "Must contain uppercase letter" in violations
        assert "Must contain digit" in violations
        assert "Must contain special character" in violations


class TestUserManager:
    """Test user creation and lookup"""

    def setup_method(self):
        self.inner = InMemoryStorage()
        self.storage = EncryptedStorage(self.inner, EnvelopeCodec("test-key"))
        self.user_manager = UserManager(self.storage)

    def test_create_user(self):
        user = self.user_manager.create_user(**signup_fields(email="Jane@Example.com"))

        assert user.email == "jane@example.com"
        assert user.full_name == "Jane Doe"
        assert user.date_of_birth == date(1990, 5, 17)
        assert user.national_id == "123-45-6789"

        loaded = self.user_manager.get_user(user.id)
        assert loaded.national_id == "123-45-6789"
        assert loaded.address == "1 Main Street"

    def test_national_id_encrypted_at_rest(self):
        user = self.user_manager.create_user(**signup_fields())
        raw = self.inner.load("users", user.id)
        assert is_envelope(raw["national_id"])
        assert is_envelope(raw["address"])
        assert "123-45-6789" not in str(raw)

    def test_public_dict_hides_secrets(self):
        user = self.user_manager.create_user(**signup_fields())
        public = user.to_public_dict()
        assert "national_id" not in public
        assert "password_hash" not in public
        assert "password_salt" not in public
        assert "123-45-6789" not in repr(user.to_public_dict())

    def test_duplicate_email_rejected(self):
        self.user_manager.create_user(**signup_fields())
        with pytest.raises(ConflictError) as exc_info:
            self.user_manager.create_user(**signup_fields(email="JANE@example.com"))
        assert exc_info.value.message == "User already exists"
        assert self.inner.count("users") == 1

    def test_concurrent_signups_with_same_email(self):
        outcomes = []

        def signup():
            try:
                self.user_manager.create_user(**signup_fields())
                outcomes.append("created")
            except ConflictError:
                outcomes.append("conflict")

        threads = [threading.Thread(target=signup) for _ in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(outcomes) == ["conflict"] * 4 + ["created"]
        assert self.inner.count("users") == 1

    def test_invalid_email(self):
        with pytest.raises(ValidationError) as exc_info:
            self.user_manager.create_user(**signup_fields(email="not-an-email"))
        assert exc_info.value.message == "Invalid email format"

    def test_weak_password(self):
        with pytest.raises(ValidationError) as exc_info:
            self.user_manager.create_user(**signup_fields(password="password"))
        assert exc_info.value.message.startswith("Password policy violations")

    def test_minor_rejected(self):
        with pytest.raises(ValidationError):
            self.user_manager.create_user(**signup_fields(date_of_birth=date.today().isoformat()))
        assert self.inner.count("users") == 0

    def test_national_id_required(self):
        with pytest.raises(ValidationError) as exc_info:
            self.user_manager.create_user(**signup_fields(national_id="  "))
        assert exc_info.value.message == "National ID is required"

    def test_get_user_by_email(self):
        user = self.user_manager.create_user(**signup_fields())
        assert self.user_manager.get_user_by_email("JANE@example.com").id == user.id
        assert self.user_manager.get_user_by_email("nobody@example.com") is None

    def test_verify_credentials(self):
        user = self.user_manager.create_user(**signup_fields())
        assert self.user_manager.verify_credentials("jane@example.com", VALID_PASSWORD).id == user.id
        assert self.user_manager.verify_credentials("jane@example.com", "Wr0ng!Pass") is None
        assert self.user_manager.verify_credentials("nobody@example.com", VALID_PASSWORD) is None

    def test_password_not_stored_in_clear(self):
        user = self.user_manager.create_user(**signup_fields())
        raw = self.inner.load("users", user.id)
        assert VALID_PASSWORD not in str(raw)
        assert raw["password_salt"]
