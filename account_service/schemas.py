"""Pydantic schemas for request and response bodies of the account service."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# --- Request schemas ---
# Every field is optional here: a missing field is answered with the service's
# own "invalid input" message instead of a framework validation error.


class _RequestBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class VerificationCodeRequest(_RequestBody):
    """Body of the send-verification-code request."""
    email: Optional[str] = None


class SignupRequest(_RequestBody):
    """Body of the signup request."""
    email: Optional[str] = None
    verify_number_input: Optional[str] = Field(None, alias="verifyNumberInput")
    password: Optional[str] = None
    password_confirm: Optional[str] = Field(None, alias="passwordConfirm")

    @field_validator("verify_number_input", mode="before")
    @classmethod
    def _code_as_text(cls, value: Any) -> Any:
        # Clients may send the code as a JSON number
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class LoginRequest(_RequestBody):
    email: Optional[str] = None
    password: Optional[str] = None


class PasswordChangeRequest(_RequestBody):
    """Body of the password change request."""
    password: Optional[str] = None
    new_password: Optional[str] = Field(None, alias="newPassword")
    new_password_confirm: Optional[str] = Field(None, alias="newPasswordConfirm")


class AccountDeleteRequest(_RequestBody):
    email: Optional[str] = None
    password: Optional[str] = None


# --- Response schemas ---

class MessageResponse(BaseModel):
    message: str


class UserResponse(BaseModel):
    """Public profile fields; the password hash is never exposed."""
    id: int = Field(serialization_alias="userId")
    email: str
    point: int
    created_at: Optional[datetime] = Field(None, serialization_alias="createdAt")
    updated_at: Optional[datetime] = Field(None, serialization_alias="updatedAt")

    # Allows building the schema straight from the SQLAlchemy model
    model_config = ConfigDict(from_attributes=True)


class UserDataResponse(BaseModel):
    data: UserResponse
