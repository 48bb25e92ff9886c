from __future__ import annotations

from core.enums import IdentityStatus
from core.models import IdentityRecord, LoanRecord

NAV_HINT = "9.Back 0.Home"

SESSION_EXPIRED = "Session expired. Please dial again."
SERVICE_UNAVAILABLE = "Service temporarily unavailable. Try later."
RECORD_NOT_FOUND = "Account not found. Please dial again."
SESSION_ENDED = "Session ended."
PHONE_ALREADY_REGISTERED = "This number is already registered. Dial again to open your menu."

_STATUS_LABELS = {
    IdentityStatus.UNVERIFIED: "Pending verification",
    IdentityStatus.VERIFIED: "Verified",
    IdentityStatus.SUSPENDED: "Suspended",
}


def _text(value: object) -> str:
    if value in (None, ""):
        return "-"
    return str(value)


def build_entry_menu(service_name: str, first_prompt: str) -> str:
    """Welcome for unregistered numbers; any non-option reply answers `first_prompt`."""
    return "\n".join(
        [
            f"Welcome to {service_name} registration.",
            "This number is not registered yet.",
            "1. Sign Up",
            "2. Lookup Courier",
            "3. Cancel",
            f"Or sign up now. {first_prompt}",
        ]
    )


def build_menu(service_name: str, display_name: str) -> str:
    return "\n".join(
        [
            f"{service_name}: Welcome back, {display_name}",
            "1. My Status",
            "2. Apply for Loan",
            "3. Lookup Courier",
            "4. Support",
            "5. Exit",
        ]
    )


def build_registration_success(service_name: str) -> str:
    return f"Registration successful! Check your SMS for the {service_name} portal link to upload your documents."


def build_status(record: IdentityRecord, latest_loan: LoanRecord | None, currency: str) -> str:
    lines = [
        f"Name: {_text(record.full_name)}",
        f"Status: {_STATUS_LABELS.get(record.status, record.status.value)}",
    ]
    if record.verified_at:
        lines.append(f"Verified: {record.verified_at[:10]}")
    if latest_loan is None:
        lines.append("Loans: none")
    else:
        lines.append(f"Last loan: {currency} {latest_loan.amount} ({latest_loan.status.value})")
    return "\n".join(lines)


def build_support(support_text: str) -> str:
    return support_text.strip() or SESSION_ENDED


def build_lookup_prompt() -> str:
    return "Enter DVLA, Ghana Card or Phone Number:"


def build_lookup_not_found() -> str:
    return f"Courier not found. {NAV_HINT}"


def build_lookup_summary(record: IdentityRecord) -> str:
    return "\n".join(
        [
            f"Name: {_text(record.full_name)}",
            f"Username: {_text(record.username)}",
            f"Email: {_text(record.email)}",
            f"DVLA: {_text(record.license_number)}",
            f"GhanaCard: {_text(record.id_card_number)}",
            f"Status: {_STATUS_LABELS.get(record.status, record.status.value)}",
        ]
    )


def build_loan_amount_prompt(minimum: int, maximum: int, currency: str) -> str:
    return f"Enter loan amount ({currency} {minimum}-{maximum}):"


def build_loan_amount_invalid(minimum: int, maximum: int) -> str:
    return f"Amount must be between {minimum} and {maximum}. Enter amount:"


def build_loan_confirm(amount: int, currency: str) -> str:
    return f"Confirm loan of {currency} {amount}?\n1. Confirm\n2. Cancel"


def build_loan_confirm_invalid(amount: int, currency: str) -> str:
    return f"Invalid choice.\n{build_loan_confirm(amount, currency)}"


def build_loan_submitted(amount: int, currency: str) -> str:
    return f"Loan request of {currency} {amount} submitted. You will receive an SMS once it is reviewed."


def build_loan_cancelled() -> str:
    return "Loan request cancelled."


def build_loan_not_allowed(status: IdentityStatus) -> str:
    if status == IdentityStatus.SUSPENDED:
        return "Your account is suspended. Contact support."
    return "Your account is pending verification. Loans open after approval."
