from __future__ import annotations

import pytest

from webinar_pipeline.adapters.mock_adapter import MockAdapter
from webinar_pipeline.contracts.enums import DeliverableId, ProjectStatus
from webinar_pipeline.contracts.types import ProjectMetadata, TranscriptData
from webinar_pipeline.errors import PreconditionError
from webinar_pipeline.pipeline_webinar import (
    COMPLETE,
    GENERATED,
    REPAIRING,
    derive_risk_flags,
)

D = DeliverableId


def _seven_emails(payload_for):
    emails = payload_for("WR4")
    emails["emails"] = emails["emails"][:7]
    return emails


class TestFullRun:
    @pytest.mark.asyncio
    async def test_mock_run_is_ready(self, store, project, make_pipeline):
        pipeline = make_pipeline(MockAdapter())

        outcome = await pipeline.run(project.project_id)

        assert outcome.ok
        assert outcome.project_status is ProjectStatus.READY
        assert set(outcome.completed) == set(GENERATED)
        assert store.get_project(project.project_id).status is ProjectStatus.READY
        records = store.list_artifacts(project.project_id)
        assert set(records) == set(GENERATED) | {D.WR9}
        assert all(record.validated for record in records.values())
        report = records[D.WR9].content
        assert report["readiness_score"] == 100
        assert report["pass"] is True
        assert report["blocking_reasons"] == []
        assert "risk_flags" in records[D.PREFLIGHT].content

    @pytest.mark.asyncio
    async def test_dependencies_run_before_dependents(self, project, make_pipeline, scripted):
        adapter = scripted()
        await make_pipeline(adapter).run(project.project_id)

        order = [call[0] for call in adapter.calls]
        assert order[:3] == ["PREFLIGHT", "WR1", "WR2"]
        assert max(order.index(d) for d in ("WR3", "WR4", "WR5")) < min(
            order.index(d) for d in ("WR6", "WR7", "WR8")
        )

    @pytest.mark.asyncio
    async def test_dependency_content_reaches_prompts(self, project, make_pipeline, scripted):
        adapter = scripted()
        await make_pipeline(adapter).run(project.project_id)

        _, user, _ = adapter.calls_for("WR6")[0]
        assert '"B21"' in user


class TestPreflight:
    @pytest.mark.asyncio
    async def test_blocked_preflight_stops_the_run(self, store, project, make_pipeline):
        adapter = MockAdapter(scenario="blocked")

        outcome = await make_pipeline(adapter).run(project.project_id)

        assert outcome.status == "preflight_blocked"
        assert outcome.project_status is ProjectStatus.PREFLIGHT_BLOCKED
        assert outcome.blocked_reason == "Missing context: offer, target_audience"
        assert len(adapter.prompts) == 1
        records = store.list_artifacts(project.project_id)
        assert list(records) == [D.PREFLIGHT]
        assert records[D.PREFLIGHT].content["risk_flags"] == ["offer_missing", "icp_missing"]
        assert store.get_project(project.project_id).status is ProjectStatus.PREFLIGHT_BLOCKED

    def test_risk_flags_ignore_field_names(self):
        preflight = {
            "status": "can_proceed",
            "missing_context": [],
            "assumptions": ["Audience is warm"],
        }
        assert derive_risk_flags(preflight) == []

    def test_risk_flags_from_text(self):
        preflight = {
            "status": "can_proceed",
            "missing_context": [{"field": "cta"}],
            "assumptions": ["Proof is missing; no testimonial yet", "How it works is unclear"],
        }
        assert derive_risk_flags(preflight) == ["proof_missing", "cta_unclear", "mechanism_unclear"]


class TestPreconditions:
    @pytest.mark.asyncio
    async def test_short_transcript(self, store, project, make_pipeline):
        store.write_transcript(project.project_id, TranscriptData(build_transcript="too short"))
        adapter = MockAdapter()

        with pytest.raises(PreconditionError):
            await make_pipeline(adapter).run(project.project_id)

        assert adapter.prompts == []
        assert store.get_project(project.project_id).status is ProjectStatus.FAILED

    @pytest.mark.asyncio
    async def test_missing_transcript(self, store, make_pipeline):
        store.save_project(ProjectMetadata(project_id="wrproj_empty", run_id="run_1", title="Empty"))
        with pytest.raises(PreconditionError):
            await make_pipeline(MockAdapter()).run("wrproj_empty")
        assert store.get_project("wrproj_empty").status is ProjectStatus.FAILED

    @pytest.mark.asyncio
    async def test_unknown_project(self, make_pipeline):
        with pytest.raises(PreconditionError):
            await make_pipeline(MockAdapter()).run("wrproj_missing")


class TestFailureIsolation:
    @pytest.mark.asyncio
    async def test_unparseable_deliverable_does_not_stop_siblings(self, store, project, make_pipeline, scripted):
        adapter = scripted(always={"WR3": "I cannot produce JSON today."})

        outcome = await make_pipeline(adapter).run(project.project_id)

        assert not outcome.ok
        assert list(outcome.failures) == [D.WR3]
        assert outcome.project_status is ProjectStatus.REVIEW
        assert len(adapter.calls_for("WR3")) == 2
        records = store.list_artifacts(project.project_id)
        assert D.WR3 not in records
        assert {D.WR4, D.WR5, D.WR6, D.WR7, D.WR8} <= set(records)
        report = records[D.WR9].content
        assert report["pass"] is False
        assert "WR3_missing" in report["blocking_reasons"]
        assert any(action.startswith("Re-run generation for WR3") for action in report["recommended_next_actions"])

    @pytest.mark.asyncio
    async def test_exhausted_repair_persists_last_candidate(self, store, project, make_pipeline, scripted, payload_for):
        adapter = scripted(always={"WR4": _seven_emails(payload_for)})

        outcome = await make_pipeline(adapter).run(project.project_id)

        assert D.WR4 in outcome.failures
        assert "Email campaign must have 8-10 emails" in outcome.failures[D.WR4].message
        record = store.read_artifact(project.project_id, D.WR4)
        assert record.validated is False
        assert len(record.content["emails"]) == 7
        report = store.read_artifact(project.project_id, D.WR9).content
        assert "WR4_schema_invalid" in report["blocking_reasons"]
        assert store.get_project(project.project_id).status is ProjectStatus.REVIEW

    @pytest.mark.asyncio
    async def test_repair_progress_reports_attempts(self, project, make_pipeline, scripted, payload_for):
        events = []
        adapter = scripted(responses={"WR4": [_seven_emails(payload_for)]})

        outcome = await make_pipeline(adapter, on_progress=events.append).run(project.project_id)

        assert outcome.ok
        repairing = [event for event in events if event.state == REPAIRING]
        assert [(event.deliverable, event.attempt, event.max_attempts) for event in repairing] == [(D.WR4, 1, 3)]
        assert [event.deliverable for event in events if event.state == COMPLETE][-1] == D.WR9

    @pytest.mark.asyncio
    async def test_non_list_proof_blocks_end_in_review(self, store, project, make_pipeline, scripted, payload_for):
        landing = payload_for("WR3")
        landing["proof_blocks"] = 3
        adapter = scripted(always={"WR3": landing})

        outcome = await make_pipeline(adapter).run(project.project_id)

        assert list(outcome.failures) == [D.WR3]
        assert outcome.project_status is ProjectStatus.REVIEW
        assert store.read_artifact(project.project_id, D.WR3).validated is False
        assert store.get_project(project.project_id).status is ProjectStatus.REVIEW
        assert store.read_artifact(project.project_id, D.WR9).content["pass"] is False


class TestRegenerate:
    @pytest.mark.asyncio
    async def test_single_target(self, store, project, make_pipeline):
        pipeline = make_pipeline(MockAdapter())
        await pipeline.run(project.project_id)
        before = store.list_artifacts(project.project_id)

        outcome = await pipeline.regenerate(project.project_id, D.WR3)

        after = store.list_artifacts(project.project_id)
        assert outcome.completed == [D.WR3]
        changed = {d for d in after if after[d].generated_at != before[d].generated_at}
        assert changed == {D.WR3, D.WR9}

    @pytest.mark.asyncio
    async def test_cascade(self, store, project, make_pipeline):
        pipeline = make_pipeline(MockAdapter())
        await pipeline.run(project.project_id)
        before = store.list_artifacts(project.project_id)

        outcome = await pipeline.regenerate(project.project_id, "WR2", cascade=True)

        after = store.list_artifacts(project.project_id)
        changed = {d for d in after if after[d].generated_at != before[d].generated_at}
        assert changed == {D.WR2, D.WR3, D.WR4, D.WR5, D.WR6, D.WR7, D.WR8, D.WR9}
        assert store.get_project(project.project_id).status is ProjectStatus.READY
        assert outcome.stale == {}
        assert store.read_artifact(project.project_id, D.WR9).content["stale_deliverables"] == {}

    @pytest.mark.asyncio
    async def test_single_target_marks_dependents_stale(self, store, project, make_pipeline):
        pipeline = make_pipeline(MockAdapter())
        await pipeline.run(project.project_id)

        outcome = await pipeline.regenerate(project.project_id, D.WR3)

        assert outcome.stale == {D.WR8: [D.WR3]}
        assert outcome.project_status is ProjectStatus.READY
        report = store.read_artifact(project.project_id, D.WR9).content
        assert report["stale_deliverables"] == {"WR8": ["WR3"]}
        assert "Regenerate WR8; it predates changes to WR3." in report["recommended_next_actions"]

    @pytest.mark.asyncio
    async def test_earlier_invalid_deliverable_keeps_project_in_review(
        self, store, project, make_pipeline, scripted, payload_for
    ):
        pipeline = make_pipeline(scripted(always={"WR4": _seven_emails(payload_for)}))
        await pipeline.run(project.project_id)

        outcome = await pipeline.regenerate(project.project_id, D.WR3)

        assert outcome.failures == {}
        assert outcome.project_status is ProjectStatus.REVIEW
        assert store.get_project(project.project_id).status is ProjectStatus.REVIEW
        report = store.read_artifact(project.project_id, D.WR9).content
        assert report["pass"] is False
        assert report["validation_results"]["WR4"]["ok"] is False


class TestEdit:
    @pytest.mark.asyncio
    async def test_edit_revalidates_and_keeps_generated_at(self, store, project, make_pipeline):
        pipeline = make_pipeline(MockAdapter())
        await pipeline.run(project.project_id)
        original = store.read_artifact(project.project_id, D.WR4)
        content = original.content
        content["emails"] = content["emails"][:7]

        record, validation = pipeline.edit(project.project_id, D.WR4, content)

        assert not validation.ok
        assert record.validated is False
        assert record.generated_at == original.generated_at
        assert record.edited_at is not None

    def test_edit_normalizes_ids(self, store, project, make_pipeline, payload_for):
        store.write_artifact(project.project_id, D.WR4, payload_for("WR4"), True)
        content = payload_for("WR4")
        content["emails"][0]["email_id"] = "E1"

        record, validation = make_pipeline(MockAdapter()).edit(project.project_id, "WR4", content)

        assert validation.ok
        assert record.content["emails"][0]["email_id"] == "E01"
        assert record.normalization_log.total_changes >= 1

    def test_report_cannot_be_edited(self, project, make_pipeline):
        with pytest.raises(PreconditionError):
            make_pipeline(MockAdapter()).edit(project.project_id, D.WR9, {})


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_after_dossier(self, store, project, make_pipeline):
        holder = {}

        def on_progress(event):
            if event.deliverable == D.WR1 and event.state == COMPLETE:
                holder["pipeline"].cancel()

        pipeline = make_pipeline(MockAdapter(), on_progress=on_progress)
        holder["pipeline"] = pipeline

        outcome = await pipeline.run(project.project_id)

        assert outcome.status == "cancelled"
        assert not outcome.ok
        assert store.read_artifact(project.project_id, D.WR2) is None
        assert store.read_artifact(project.project_id, D.WR1) is not None
        assert store.get_project(project.project_id).status is ProjectStatus.REVIEW

    @pytest.mark.asyncio
    async def test_pipeline_can_run_again_after_cancel(self, store, project, make_pipeline):
        pipeline = make_pipeline(MockAdapter())
        pipeline.cancel()

        outcome = await pipeline.run(project.project_id)

        assert outcome.ok
