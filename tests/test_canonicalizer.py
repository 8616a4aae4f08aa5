from __future__ import annotations

import copy

from webinar_pipeline.canonicalizer import (
    canonicalize,
    coerce_boolean,
    coerce_number,
    format_normalization_log,
)
from webinar_pipeline.contracts.enums import DeliverableId
from webinar_pipeline.gates.schema import validate_schema


def _types(log):
    return [change.type for change in log.changes]


class TestCoercion:
    def test_numbers(self):
        assert coerce_number("5") == 5
        assert coerce_number(" 2.5 ") == 2.5
        assert coerce_number("-3") == -3
        assert coerce_number("five") is None
        assert coerce_number(7) is None

    def test_booleans(self):
        assert coerce_boolean("true") is True
        assert coerce_boolean("FALSE") is False
        assert coerce_boolean(1) is True
        assert coerce_boolean(0) is False
        assert coerce_boolean("yes") is None
        assert coerce_boolean(2) is None


class TestIdPadding:
    def test_in_range_block_ids_are_padded(self, payload_for):
        raw = payload_for("WR2")
        raw["blocks"][0]["block_id"] = "B1"
        raw["blocks"][8]["block_id"] = "B9"

        value, log = canonicalize(DeliverableId.WR2, raw)

        assert value["blocks"][0]["block_id"] == "B01"
        assert value["blocks"][8]["block_id"] == "B09"
        padding = [change for change in log.changes if change.type == "id_padding"]
        assert [change.path for change in padding] == ["blocks[0].block_id", "blocks[8].block_id"]
        assert padding[0].before == "B1"
        assert padding[0].after == "B01"
        assert validate_schema(DeliverableId.WR2, value).ok

    def test_out_of_range_ids_are_left_for_schema_to_reject(self, payload_for):
        raw = payload_for("WR2")
        raw["blocks"][20]["block_id"] = "B22"

        value, log = canonicalize(DeliverableId.WR2, raw)

        assert value["blocks"][20]["block_id"] == "B22"
        assert "id_padding" not in _types(log)
        result = validate_schema(DeliverableId.WR2, value)
        assert not result.ok
        assert any(issue.field == "blocks[20].block_id" for issue in result.issues)

    def test_email_and_social_ids(self, payload_for):
        emails = payload_for("WR4")
        emails["emails"][2]["email_id"] = "E3"
        social = payload_for("WR5")
        social["x_posts"][0]["social_id"] = "S4"

        assert canonicalize(DeliverableId.WR4, emails)[0]["emails"][2]["email_id"] == "E03"
        assert canonicalize(DeliverableId.WR5, social)[0]["x_posts"][0]["social_id"] == "S04"

    def test_checklist_ids_are_padded_and_rehomed(self, payload_for):
        raw = payload_for("WR7")
        raw["pre_webinar"][0]["checklist_id"] = "CL_pre_1"
        raw["live_webinar"][1]["checklist_id"] = "CL_pre_7"

        value, _ = canonicalize(DeliverableId.WR7, raw)

        assert value["pre_webinar"][0]["checklist_id"] == "CL_pre_001"
        assert value["live_webinar"][1]["checklist_id"] == "CL_live_007"


class TestPhaseFix:
    def test_phase_follows_block_number(self, payload_for):
        raw = payload_for("WR2")
        raw["blocks"][0]["phase"] = "end"
        raw["blocks"][10]["phase"] = "beginning"
        raw["blocks"][20]["phase"] = "middle"

        value, log = canonicalize(DeliverableId.WR2, raw)

        assert value["blocks"][0]["phase"] == "beginning"
        assert value["blocks"][10]["phase"] == "middle"
        assert value["blocks"][20]["phase"] == "end"
        assert _types(log).count("phase_fix") == 3

    def test_phase_uses_padded_id(self, payload_for):
        raw = payload_for("WR2")
        raw["blocks"][8]["block_id"] = "B9"
        raw["blocks"][8]["phase"] = "end"

        value, _ = canonicalize(DeliverableId.WR2, raw)

        assert value["blocks"][8]["phase"] == "middle"


class TestFieldRemovalAndCoercion:
    def test_unknown_fields_are_dropped_at_every_scope(self, payload_for):
        raw = payload_for("WR3")
        raw["notes_for_editor"] = "remove me"
        raw["cta_block"]["color"] = "blue"
        raw["faq"][0]["votes"] = 3

        value, log = canonicalize(DeliverableId.WR3, raw)

        assert "notes_for_editor" not in value
        assert "color" not in value["cta_block"]
        assert "votes" not in value["faq"][0]
        removed = {change.path for change in log.changes if change.type == "field_removal"}
        assert removed == {"notes_for_editor", "cta_block.color", "faq[0].votes"}
        assert validate_schema(DeliverableId.WR3, value).ok

    def test_numeric_and_boolean_strings(self, payload_for):
        raw = payload_for("WR3")
        raw["agenda_preview"][0]["timebox_minutes"] = "10"
        raw["proof_blocks"][0]["needs_source"] = "false"
        framework = payload_for("WR2")
        framework["blocks"][0]["timebox_minutes"] = "3"

        value, log = canonicalize(DeliverableId.WR3, raw)
        blocks, _ = canonicalize(DeliverableId.WR2, framework)

        assert value["agenda_preview"][0]["timebox_minutes"] == 10
        assert value["proof_blocks"][0]["needs_source"] is False
        assert _types(log).count("type_coercion") == 2
        assert blocks["blocks"][0]["timebox_minutes"] == 3


class TestSorting:
    def test_blocks_and_emails_sorted_by_number(self, payload_for):
        framework = payload_for("WR2")
        framework["blocks"].reverse()
        emails = payload_for("WR4")
        emails["emails"] = [emails["emails"][3], *emails["emails"][:3], *emails["emails"][4:]]

        blocks, block_log = canonicalize(DeliverableId.WR2, framework)
        ordered, email_log = canonicalize(DeliverableId.WR4, emails)

        assert [block["block_id"] for block in blocks["blocks"]][:3] == ["B01", "B02", "B03"]
        assert [email["email_id"] for email in ordered["emails"]][:4] == ["E01", "E02", "E03", "E04"]
        assert "array_sort" in _types(block_log)
        assert "array_sort" in _types(email_log)

    def test_timeline_sorted_by_start_minute(self, payload_for):
        raw = payload_for("WR6")
        raw["timeline"].reverse()

        value, log = canonicalize(DeliverableId.WR6, raw)

        starts = [segment["start_minute"] for segment in value["timeline"]]
        assert starts == sorted(starts)
        assert log.changes[-1].type == "array_sort"

    def test_sorted_input_records_nothing(self, payload_for):
        _, log = canonicalize(DeliverableId.WR2, payload_for("WR2"))
        assert log.changes == []


class TestProperties:
    def test_idempotent(self, payload_for):
        raw = payload_for("WR2")
        raw["blocks"].reverse()
        raw["blocks"][3]["block_id"] = "B4"
        raw["blocks"][5]["extra"] = True
        raw["blocks"][6]["timebox_minutes"] = "2"

        once, first_log = canonicalize(DeliverableId.WR2, raw)
        twice, second_log = canonicalize(DeliverableId.WR2, once)

        assert twice == once
        assert first_log.total_changes > 0
        assert second_log.total_changes == 0

    def test_input_is_not_mutated(self, payload_for):
        raw = payload_for("WR4")
        raw["emails"][0]["email_id"] = "E1"
        raw["unexpected"] = 1
        snapshot = copy.deepcopy(raw)

        canonicalize(DeliverableId.WR4, raw)

        assert raw == snapshot

    def test_readiness_report_and_non_objects_pass_through(self):
        report = {"anything": [1, 2, 3]}
        value, log = canonicalize(DeliverableId.WR9, report)
        assert value == report
        assert log.changes == []

        value, log = canonicalize(DeliverableId.WR2, ["not", "an", "object"])
        assert value == ["not", "an", "object"]
        assert log.changes == []


class TestFormatting:
    def test_format_log(self, payload_for):
        raw = payload_for("WR2")
        raw["blocks"][0]["block_id"] = "B1"
        raw["stray"] = "x"
        _, log = canonicalize(DeliverableId.WR2, raw)

        text = format_normalization_log(log)

        assert text.startswith("WR2: 2 changes")
        assert "blocks[0].block_id: Normalized block_id: B1 -> B01" in text
        assert 'Removed unknown field "stray"' in text

    def test_format_empty_log(self, payload_for):
        _, log = canonicalize(DeliverableId.WR8, payload_for("WR8"))
        assert format_normalization_log(log) == "WR8: no normalization needed"
