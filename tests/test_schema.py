from __future__ import annotations

import pytest

from webinar_pipeline.contracts.enums import DeliverableId
from webinar_pipeline.gates.schema import field_path, validate_schema

GENERATED = ["PREFLIGHT", "WR1", "WR2", "WR3", "WR4", "WR5", "WR6", "WR7", "WR8"]


class TestValidPayloads:
    @pytest.mark.parametrize("deliverable", GENERATED)
    def test_mock_payloads_pass(self, payload_for, deliverable):
        result = validate_schema(deliverable, payload_for(deliverable))
        assert result.ok, result.errors

    def test_preflight_risk_flags_optional_but_enumerated(self, payload_for):
        preflight = payload_for("PREFLIGHT")
        preflight["risk_flags"] = ["offer_missing"]
        assert validate_schema(DeliverableId.PREFLIGHT, preflight).ok

        preflight["risk_flags"] = ["made_up"]
        assert not validate_schema(DeliverableId.PREFLIGHT, preflight).ok


class TestViolations:
    def test_collects_every_violation(self, payload_for):
        framework = payload_for("WR2")
        framework["blocks"] = framework["blocks"][:20]
        framework["blocks"][0]["timebox_minutes"] = "ten"
        del framework["qa"]

        result = validate_schema(DeliverableId.WR2, framework)

        codes = {issue.code for issue in result.issues}
        assert {"schema_minItems", "schema_type", "schema_required"} <= codes
        assert len(result.issues) >= 3

    def test_issue_rendering(self, payload_for):
        emails = payload_for("WR4")
        emails["emails"][0]["email_id"] = "E11"

        result = validate_schema(DeliverableId.WR4, emails)

        assert len(result.errors) == 1
        assert result.errors[0].startswith("schema:WR4.emails[0].email_id ")
        issue = result.issues[0]
        assert issue.kind == "schema"
        assert issue.code == "schema_pattern"
        assert issue.blocking

    def test_unknown_fields_rejected(self, payload_for):
        deck = payload_for("WR8")
        deck["theme"] = "dark"
        result = validate_schema(DeliverableId.WR8, deck)
        assert [issue.code for issue in result.issues] == ["schema_additionalProperties"]

    def test_array_bounds(self, payload_for):
        social = payload_for("WR5")
        social["last_chance_blurbs"] = []
        deck = payload_for("WR8")
        deck["gamma_prompt"] = "too short"

        assert validate_schema(DeliverableId.WR5, social).issues[0].field == "last_chance_blurbs"
        assert validate_schema(DeliverableId.WR8, deck).issues[0].code == "schema_minLength"

    def test_unknown_deliverable(self):
        result = validate_schema("WR42", {})
        assert not result.ok
        assert result.issues[0].code == "schema_not_found"
        assert result.errors == ["schema:WR42 no contract registered"]


class TestFieldPath:
    def test_renders_indices_in_brackets(self):
        assert field_path(["blocks", 3, "block_id"]) == "blocks[3].block_id"
        assert field_path([]) == ""
        assert field_path(["timeline", 0]) == "timeline[0]"
