from __future__ import annotations

from dataclasses import dataclass
from functools import partial
from typing import Any, Callable

from core import validators
from core.enums import FieldName

DEFAULT_VARIANT = "courier"

REGISTRATION_PRESETS: dict[str, tuple[str, ...]] = {
    "courier": (
        FieldName.FULL_NAME,
        FieldName.USERNAME,
        FieldName.EMAIL,
        FieldName.PASSWORD,
        FieldName.CONFIRM_PASSWORD,
        FieldName.LICENSE_NUMBER,
        FieldName.ID_CARD_NUMBER,
    ),
    "borrower": (
        FieldName.FULL_NAME,
        FieldName.ID_CARD_NUMBER,
    ),
    "member": (
        FieldName.FULL_NAME,
        FieldName.EMAIL,
        FieldName.ID_CARD_NUMBER,
    ),
}


def _strip(value: str) -> str:
    return value.strip()


def _upper(value: str) -> str:
    return value.strip().upper()


def _lower(value: str) -> str:
    return value.strip().lower()


@dataclass(frozen=True, slots=True)
class FieldSpec:
    name: str
    prompt: str
    invalid_message: str
    validator: Callable[[str], bool]
    normalizer: Callable[[str], str] = _strip
    unique: bool = False
    taken_message: str = ""


@dataclass(frozen=True, slots=True)
class RegistrationSchema:
    fields: tuple[FieldSpec, ...]

    @property
    def first(self) -> FieldSpec:
        return self.fields[0]

    def get(self, name: str) -> FieldSpec | None:
        for field_spec in self.fields:
            if field_spec.name == name:
                return field_spec
        return None

    def next_after(self, name: str) -> FieldSpec | None:
        names = self.names()
        if name not in names:
            return None
        index = names.index(name) + 1
        return self.fields[index] if index < len(self.fields) else None

    def names(self) -> list[str]:
        return [field_spec.name for field_spec in self.fields]

    def unique_fields(self) -> list[FieldSpec]:
        return [field_spec for field_spec in self.fields if field_spec.unique]


def _field_library(name_min_length: int) -> dict[str, FieldSpec]:
    return {
        FieldName.FULL_NAME: FieldSpec(
            name=FieldName.FULL_NAME,
            prompt="Enter Full Name:",
            invalid_message="Invalid name. Enter Full Name:",
            validator=partial(validators.is_valid_name, min_length=name_min_length),
        ),
        FieldName.USERNAME: FieldSpec(
            name=FieldName.USERNAME,
            prompt="Choose a Username:",
            invalid_message="Invalid username. Try again:",
            validator=validators.is_valid_username,
            unique=True,
            taken_message="Username taken. Enter a different Username:",
        ),
        FieldName.EMAIL: FieldSpec(
            name=FieldName.EMAIL,
            prompt="Enter Email:",
            invalid_message="Invalid email. Enter Email:",
            validator=validators.is_valid_email,
            normalizer=_lower,
            unique=True,
            taken_message="Email already in use. Enter a different Email:",
        ),
        FieldName.PASSWORD: FieldSpec(
            name=FieldName.PASSWORD,
            prompt="Create Password:",
            invalid_message=f"Password too short (min {validators.PASSWORD_MIN_LENGTH}). Create Password:",
            validator=validators.is_valid_password,
        ),
        FieldName.CONFIRM_PASSWORD: FieldSpec(
            name=FieldName.CONFIRM_PASSWORD,
            prompt="Confirm Password:",
            invalid_message="Passwords do not match. Create Password:",
            validator=lambda value: True,
        ),
        FieldName.LICENSE_NUMBER: FieldSpec(
            name=FieldName.LICENSE_NUMBER,
            prompt="Enter DVLA License Number:",
            invalid_message="Invalid DVLA number. Enter DVLA License Number:",
            validator=validators.is_valid_license_number,
            normalizer=_upper,
            unique=True,
            taken_message="DVLA already registered. Enter a different DVLA License Number:",
        ),
        FieldName.ID_CARD_NUMBER: FieldSpec(
            name=FieldName.ID_CARD_NUMBER,
            prompt="Enter Ghana Card (e.g., GHA-123456789-01):",
            invalid_message="Invalid format. Use GHA-XXXXXXXXX-XX:",
            validator=validators.is_valid_id_card,
            normalizer=_upper,
            unique=True,
            taken_message="Ghana Card already registered. Enter a different Ghana Card:",
        ),
    }


def build_registration_schema(field_names: list[str] | tuple[str, ...], name_min_length: int = 3) -> RegistrationSchema:
    names = [str(name).strip().lower() for name in field_names if str(name).strip()]
    if not names:
        raise ValueError("registration schema needs at least one field")
    if len(set(names)) != len(names):
        raise ValueError(f"registration schema has duplicate fields: {names}")

    library = _field_library(max(1, int(name_min_length)))
    unknown = [name for name in names if name not in library]
    if unknown:
        raise ValueError(f"unsupported registration fields: {unknown}")

    for index, name in enumerate(names):
        if name != FieldName.CONFIRM_PASSWORD:
            continue
        if index == 0 or names[index - 1] != FieldName.PASSWORD:
            raise ValueError("confirm_password must directly follow password")
    return RegistrationSchema(fields=tuple(library[name] for name in names))


def registration_schema_from_config(config: dict[str, Any]) -> RegistrationSchema:
    dconf = config.get("dialog", {})
    explicit = dconf.get("registration_fields")
    if isinstance(explicit, (list, tuple)) and explicit:
        names = tuple(str(name) for name in explicit)
    else:
        variant = str(dconf.get("variant", DEFAULT_VARIANT) or DEFAULT_VARIANT).strip().lower()
        if variant not in REGISTRATION_PRESETS:
            raise ValueError(f"unsupported dialog variant: {variant}")
        names = REGISTRATION_PRESETS[variant]
    return build_registration_schema(names, name_min_length=int(dconf.get("name_min_length", 3)))
