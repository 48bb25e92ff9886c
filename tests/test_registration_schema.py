from __future__ import annotations

import unittest

from core.enums import FieldName, Flow
from core.models import EntryState, MenuState, RegistrationState
from dialog.levels import can_transition, is_authenticated_stack
from dialog.schema import build_registration_schema, registration_schema_from_config


class RegistrationSchemaTest(unittest.TestCase):
    def test_default_variant_is_courier(self) -> None:
        schema = registration_schema_from_config({})
        self.assertEqual(
            schema.names(),
            [
                "full_name",
                "username",
                "email",
                "password",
                "confirm_password",
                "license_number",
                "id_card_number",
            ],
        )
        self.assertEqual(schema.first.name, FieldName.FULL_NAME)
        self.assertEqual(
            [field_spec.name for field_spec in schema.unique_fields()],
            ["username", "email", "license_number", "id_card_number"],
        )

    def test_borrower_variant(self) -> None:
        schema = registration_schema_from_config({"dialog": {"variant": "borrower"}})
        self.assertEqual(schema.names(), ["full_name", "id_card_number"])
        next_spec = schema.next_after("full_name")
        assert next_spec is not None
        self.assertEqual(next_spec.name, "id_card_number")
        self.assertIsNone(schema.next_after("id_card_number"))
        self.assertIsNone(schema.next_after("unknown"))

    def test_explicit_fields_override_variant(self) -> None:
        schema = registration_schema_from_config(
            {"dialog": {"variant": "courier", "registration_fields": ["full_name", "email"]}}
        )
        self.assertEqual(schema.names(), ["full_name", "email"])

    def test_rejects_invalid_field_lists(self) -> None:
        with self.assertRaises(ValueError):
            build_registration_schema([])
        with self.assertRaises(ValueError):
            build_registration_schema(["full_name", "full_name"])
        with self.assertRaises(ValueError):
            build_registration_schema(["full_name", "favourite_colour"])
        with self.assertRaises(ValueError):
            build_registration_schema(["full_name", "confirm_password", "password"])
        with self.assertRaises(ValueError):
            registration_schema_from_config({"dialog": {"variant": "astronaut"}})

    def test_normalizers(self) -> None:
        schema = build_registration_schema(["email", "id_card_number", "license_number"])
        email = schema.get("email")
        card = schema.get("id_card_number")
        license_spec = schema.get("license_number")
        assert email is not None and card is not None and license_spec is not None
        self.assertEqual(email.normalizer("  Kwame@Example.COM "), "kwame@example.com")
        self.assertEqual(card.normalizer(" gha-123456789-01"), "GHA-123456789-01")
        self.assertEqual(license_spec.normalizer("dl-123"), "DL-123")

    def test_name_min_length_is_configurable(self) -> None:
        schema = registration_schema_from_config({"dialog": {"variant": "borrower", "name_min_length": 5}})
        self.assertFalse(schema.first.validator("Kofi"))
        self.assertTrue(schema.first.validator("Kwame"))


class DialogLevelsTest(unittest.TestCase):
    def test_transitions(self) -> None:
        self.assertTrue(can_transition(Flow.REGISTRATION, Flow.REGISTRATION))
        self.assertTrue(can_transition(Flow.MENU, Flow.LOOKUP))
        self.assertTrue(can_transition(Flow.MENU, Flow.LOAN))
        self.assertTrue(can_transition(Flow.LOAN, Flow.LOAN))
        self.assertFalse(can_transition(Flow.REGISTRATION, Flow.MENU))
        self.assertFalse(can_transition(Flow.LOOKUP, Flow.LOAN))
        self.assertFalse(can_transition(Flow.MENU, Flow.MENU))
        self.assertTrue(can_transition(Flow.ENTRY, Flow.REGISTRATION))
        self.assertTrue(can_transition(Flow.ENTRY, Flow.LOOKUP))
        self.assertFalse(can_transition(Flow.ENTRY, Flow.LOAN))
        self.assertFalse(can_transition(Flow.ENTRY, Flow.MENU))

    def test_authenticated_stack(self) -> None:
        menu = MenuState(level="menu", message="m", identity_id="id-1", display_name="Kwame")
        self.assertTrue(is_authenticated_stack([menu]))
        self.assertFalse(is_authenticated_stack([RegistrationState(level="full_name", message="x")]))
        self.assertFalse(is_authenticated_stack([EntryState(level="entry", message="x")]))
        self.assertFalse(is_authenticated_stack([]))


if __name__ == "__main__":
    unittest.main()
