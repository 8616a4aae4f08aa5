from __future__ import annotations

import pytest

from webinar_pipeline.contracts.enums import AudienceTemperature, CTAMode
from webinar_pipeline.intake import create_project, load_intake, parse_frontmatter


class TestFrontmatter:
    def test_yaml(self):
        meta, body = parse_frontmatter("---\ntitle: Talk\nwebinar_length_minutes: 45\n---\nBody text")
        assert meta == {"title": "Talk", "webinar_length_minutes": 45}
        assert body == "Body text"

    def test_json_prefix(self):
        meta, body = parse_frontmatter('{"cta_mode": "buy_now"}\nBody text')
        assert meta == {"cta_mode": "buy_now"}
        assert body == "Body text"

    def test_plain_text(self):
        assert parse_frontmatter("Just a transcript") == ({}, "Just a transcript")

    def test_invalid_yaml_is_kept_as_text(self):
        content = "---\ntitle: [unclosed\n---\nBody"
        assert parse_frontmatter(content) == ({}, content)


class TestLoadIntake:
    def test_settings_and_title_from_frontmatter(self, tmp_path):
        transcript = tmp_path / "talk.md"
        transcript.write_text(
            "---\ntitle: Book Calls\ncta_mode: hybrid\naudience_temperature: cold\n"
            "webinar_length_minutes: 90\noperator_notes: keep it short\n---\nThe build transcript.",
            encoding="utf-8",
        )
        intake = tmp_path / "intake.txt"
        intake.write_text("Intake call notes", encoding="utf-8")

        loaded = load_intake(transcript, intake_path=intake)

        assert loaded.title == "Book Calls"
        assert loaded.settings.cta_mode is CTAMode.HYBRID
        assert loaded.settings.audience_temperature is AudienceTemperature.COLD
        assert loaded.settings.webinar_length_minutes == 90
        assert loaded.transcript.build_transcript == "The build transcript."
        assert loaded.transcript.intake_transcript == "Intake call notes"
        assert loaded.transcript.operator_notes == "keep it short"

    def test_defaults_and_notes_file(self, tmp_path):
        transcript = tmp_path / "signature_talk.txt"
        transcript.write_text("Plain transcript", encoding="utf-8")
        notes = tmp_path / "notes.md"
        notes.write_text("From the operator", encoding="utf-8")

        loaded = load_intake(transcript, notes_path=notes)

        assert loaded.title == "signature_talk"
        assert loaded.settings.cta_mode is CTAMode.BOOK_CALL
        assert loaded.transcript.operator_notes == "From the operator"

    def test_invalid_setting(self, tmp_path):
        transcript = tmp_path / "talk.md"
        transcript.write_text("---\ncta_mode: webinar\n---\nBody", encoding="utf-8")
        with pytest.raises(ValueError):
            load_intake(transcript)

    def test_create_project(self, tmp_path, store):
        transcript = tmp_path / "talk.md"
        transcript.write_text("Plain transcript", encoding="utf-8")

        metadata = create_project(store, load_intake(transcript))

        assert metadata.project_id.startswith("wrproj_")
        assert metadata.run_id.startswith("run_")
        assert store.get_project(metadata.project_id) == metadata
        assert store.read_transcript(metadata.project_id).build_transcript == "Plain transcript"
