from __future__ import annotations

from enum import Enum


class Flow(str, Enum):
    ENTRY = "entry"
    REGISTRATION = "registration"
    MENU = "menu"
    LOOKUP = "lookup"
    LOAN = "loan"


class IdentityStatus(str, Enum):
    UNVERIFIED = "unverified"
    VERIFIED = "verified"
    SUSPENDED = "suspended"


class LoanStatus(str, Enum):
    PENDING = "pending"
    SETTLED = "settled"
    REJECTED = "rejected"


class FieldName:
    FULL_NAME = "full_name"
    USERNAME = "username"
    EMAIL = "email"
    PASSWORD = "password"
    CONFIRM_PASSWORD = "confirm_password"
    LICENSE_NUMBER = "license_number"
    ID_CARD_NUMBER = "id_card_number"
    PHONE = "phone"

    UNIQUE_FIELDS = (
        PHONE,
        USERNAME,
        EMAIL,
        LICENSE_NUMBER,
        ID_CARD_NUMBER,
    )


class ActivityAction:
    REGISTERED = "registered"
    LOAN_REQUESTED = "loan_requested"
    LOAN_SETTLED = "loan_settled"
    LOAN_REJECTED = "loan_rejected"
    IDENTITY_VERIFIED = "identity_verified"
    IDENTITY_SUSPENDED = "identity_suspended"
    LOOKUP = "lookup"
