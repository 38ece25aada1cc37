import re

from pydantic import BaseModel, ValidationError, field_validator

MIN_PHONE_DIGITS = 10

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_phone(raw: str) -> str:
    # digits only, as typed into a masked phone field
    return re.sub(r"\D", "", raw or "")


def is_valid_phone(raw: str) -> bool:
    return len(normalize_phone(raw)) >= MIN_PHONE_DIGITS


def check_full_name(value: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValueError("Full name is required")
    return value


def check_email(value: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValueError("Email is required")
    if not EMAIL_RE.match(value):
        raise ValueError("Invalid email")
    return value


def check_national_id(value: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValueError("National ID is required")
    if not (value.isdigit() and len(value) == 10):
        raise ValueError("National ID must be 10 digits")
    return value


class RegistrationForm(BaseModel):
    full_name: str
    email: str
    national_id: str
    terms_accepted: bool = False

    @field_validator("full_name")
    @classmethod
    def name_required(cls, value: str) -> str:
        return check_full_name(value)

    @field_validator("email")
    @classmethod
    def email_valid(cls, value: str) -> str:
        return check_email(value)

    @field_validator("national_id")
    @classmethod
    def national_id_digits(cls, value: str) -> str:
        return check_national_id(value)

    @field_validator("terms_accepted")
    @classmethod
    def terms_required(cls, value: bool) -> bool:
        if not value:
            raise ValueError("Please accept the terms and conditions")
        return value

    def to_profile_fields(self) -> dict:
        return {"display_name": self.full_name, "email": self.email, "national_id": self.national_id}


class ProfileEdit(BaseModel):
    display_name: str | None = None
    email: str | None = None

    @field_validator("display_name")
    @classmethod
    def name_not_blank(cls, value: str | None) -> str | None:
        return None if value is None else check_full_name(value)

    @field_validator("email")
    @classmethod
    def email_valid(cls, value: str | None) -> str | None:
        return None if value is None else check_email(value)

    def changes(self) -> dict:
        return self.model_dump(exclude_none=True)


def first_error(exc: ValidationError) -> str:
    error = exc.errors()[0]
    cause = error.get("ctx", {}).get("error")
    return str(cause) if cause else error["msg"]
