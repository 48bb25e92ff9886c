from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from html import escape
from typing import Any

from core.models import IdentityRecord

REGISTRATION_WELCOME = "registration_welcome"
LOOKUP_DETAILS = "lookup_details"
LOAN_REQUESTED = "loan_requested"


@dataclass(slots=True)
class RenderedNotification:
    sms_text: str | None = None
    email_subject: str | None = None
    email_text: str | None = None
    email_html: str | None = None


def render(template_key: str, record: IdentityRecord, context: dict[str, Any], service_conf: dict[str, Any]) -> RenderedNotification:
    service_name = str(service_conf.get("name", "PCRS") or "PCRS")
    portal_url = str(service_conf.get("portal_url", "") or "")

    if template_key == REGISTRATION_WELCOME:
        return RenderedNotification(
            sms_text=_registration_sms(service_name, portal_url),
            email_subject=f"Complete Your {service_name} Registration",
            email_text=_registration_email_text(record, service_name, portal_url),
            email_html=_registration_email_html(record, service_name, portal_url),
        )
    if template_key == LOOKUP_DETAILS:
        return RenderedNotification(sms_text=_lookup_sms(record))
    if template_key == LOAN_REQUESTED:
        amount = context.get("amount", "-")
        currency = str(context.get("currency", "GHS") or "GHS")
        return RenderedNotification(
            sms_text=(
                f"{service_name}: your loan request of {currency} {amount} was received "
                "and is pending review."
            ),
        )
    raise KeyError(f"unknown notification template: {template_key}")


def _registration_sms(service_name: str, portal_url: str) -> str:
    lines = [
        f"Welcome to {service_name}.",
        "To complete your registration and compliance, upload your documents "
        "(Driver's License and Ghana Card) on the portal:",
    ]
    if portal_url:
        lines.append(portal_url)
    return "\n".join(lines)


def _lookup_sms(record: IdentityRecord) -> str:
    return "\n".join(
        [
            "Courier Details",
            f"Name: {record.full_name or '-'}",
            f"Compliant: {'Yes' if record.status.value == 'verified' else 'No'}",
            f"Phone: {record.phone}",
            f"Email: {record.email or '-'}",
            f"License: {record.license_number or '-'}",
            f"Ghana Card: {record.id_card_number or '-'}",
        ]
    )


def _registration_email_text(record: IdentityRecord, service_name: str, portal_url: str) -> str:
    name = record.username or record.full_name or "courier"
    lines = [
        f"Hello {name},",
        "",
        "Your account has been successfully created.",
        f"To complete your registration, log in to the {service_name} portal and upload:",
        "- DVLA License",
        "- Ghana Card",
    ]
    if portal_url:
        lines.extend(["", portal_url])
    lines.extend(["", "Never share your password. We will never ask for it via email or phone."])
    return "\n".join(lines)


def _registration_email_html(record: IdentityRecord, service_name: str, portal_url: str) -> str:
    name = escape(record.username or record.full_name or "courier")
    service = escape(service_name)
    button = ""
    if portal_url:
        button = (
            f'<p><a href="{escape(portal_url, quote=True)}" '
            'style="display:inline-block;padding:12px 24px;background-color:#0d6efd;'
            'color:#ffffff;text-decoration:none;border-radius:4px;font-weight:bold;">'
            f"Go to {service} Portal</a></p>"
        )
    year = datetime.now(timezone.utc).year
    return f"""<!DOCTYPE html>
<html>
<head><title>Complete Your {service} Registration</title></head>
<body style="font-family:Arial,sans-serif;line-height:1.6;color:#333;">
  <div style="max-width:600px;margin:0 auto;padding:20px;">
    <div style="background-color:#0d6efd;padding:20px;text-align:center;color:#ffffff;">
      <h1>{service}</h1>
    </div>
    <div style="padding:20px;border:1px solid #eee;">
      <p>Hello <strong>{name}</strong>,</p>
      <p>Your account has been successfully created!</p>
      <p>To complete your registration, log in to the portal and upload your compliance documents:</p>
      <ul><li>DVLA License</li><li>Ghana Card</li></ul>
      {button}
      <ol>
        <li>Log in with your username and password</li>
        <li>Go to your <strong>Profile</strong> page</li>
        <li>Upload your documents</li>
        <li>Submit for verification</li>
      </ol>
      <p>For security, never share your password. We will never ask for it via email or phone.</p>
    </div>
    <div style="margin-top:20px;font-size:12px;color:#666;text-align:center;">
      <p>&copy; {year} {service}. All rights reserved.</p>
    </div>
  </div>
</body>
</html>
"""
