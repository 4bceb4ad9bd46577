"""Project readiness view: optimistic updates and snapshot rollback."""

from unittest.mock import patch

import pytest

from opready.core.exceptions import PersistenceError, ReconciliationFailure, StorageError
from opready.services.readiness_view import OperationResult, ProjectReadinessView


@pytest.fixture()
def view(store, lifecycle, evidence_manager, allocator, project):
    v = ProjectReadinessView(project.id, store, lifecycle, evidence_manager, allocator)
    return v


class TestStatusRollback:
    def test_success_becomes_authoritative(self, view, criterion):
        view.load()
        view.open_trail(criterion.id)
        result = view.set_status(criterion.id, "caveat")
        assert result.ok
        assert view.criterion(criterion.id)["status"] == "caveat"
        assert view.criterion(criterion.id)["status_label"] == "Caveat"
        assert view.trails[criterion.id][0]["note"] == "Status changed to: Caveat"

    def test_failed_persist_restores_whole_entity(self, store, view, criterion):
        view.load()
        before = dict(view.criterion(criterion.id))

        with patch.object(store, "update_criterion_status", side_effect=PersistenceError("offline")):
            result = view.set_status(criterion.id, "done")

        assert not result.ok
        assert result.reverted is True
        assert result.error_kind == "PersistenceError"
        assert view.criterion(criterion.id) == before
        assert view.criterion(criterion.id)["status"] == "not_started"

    def test_failed_read_back_keeps_new_status(self, store, view, criterion):
        cid = criterion.id
        view.load()
        real_get = store.get_criterion
        calls = []

        def get_once(criterion_id):
            calls.append(criterion_id)
            if len(calls) > 1:
                raise PersistenceError("read timeout", operation="get_criterion")
            return real_get(criterion_id)

        with patch.object(store, "get_criterion", side_effect=get_once):
            result = view.set_status(cid, "delayed")

        assert result.ok
        assert view.criterion(cid)["status"] == "delayed"
        assert store.get_criterion(cid).status == "delayed"

    def test_invalid_status_is_local(self, store, view, criterion):
        view.load()
        with patch.object(store, "update_criterion_status") as upd:
            result = view.set_status(criterion.id, "bogus")
            upd.assert_not_called()
        assert result.error_kind == "ValidationError"
        assert result.reverted is False

    def test_details_rollback(self, store, view, criterion):
        view.load()
        with patch.object(store, "update_criterion_field", side_effect=PersistenceError("offline")):
            result = view.update_details(criterion.id, {"owner_email": "x@example.com"})
        assert result.reverted
        assert view.criterion(criterion.id)["owner_email"] is None

    def test_rollback_without_snapshot_is_a_defect(self, view, criterion):
        view.load()
        with pytest.raises(ReconciliationFailure):
            view._rollback(("criterion", criterion.id))


class TestEvidenceInView:
    def test_add_link_prepends_entry_and_cover_note(self, view, criterion):
        view.open_trail(criterion.id)
        result = view.add_evidence(criterion.id, "link", "SOP", "https://example.com/sop")
        assert result.ok
        trail = view.trails[criterion.id]
        assert [e["kind"] for e in trail[:2]] == ["note", "link"]

    def test_blank_narrative_fails_without_write(self, store, view, criterion):
        result = view.add_evidence(criterion.id, "note", "  ")
        assert result.error_kind == "ValidationError"
        assert store.list_evidence(criterion.id) == []

    def test_delete_restores_trail_on_failure(self, store, view, criterion):
        view.add_evidence(criterion.id, "link", "SOP", "https://example.com/sop")
        view.open_trail(criterion.id)
        before = [dict(e) for e in view.trails[criterion.id]]
        link_id = next(e["id"] for e in before if e["kind"] == "link")

        with patch.object(store, "delete_evidence", side_effect=PersistenceError("offline")):
            result = view.delete_evidence(criterion.id, link_id)

        assert result.reverted
        assert view.trails[criterion.id] == before

    def test_delete_note_refused_locally(self, view, criterion):
        view.add_evidence(criterion.id, "note", "Reviewed")
        view.open_trail(criterion.id)
        note_id = view.trails[criterion.id][0]["id"]
        result = view.delete_evidence(criterion.id, note_id)
        assert result.error_kind == "ValidationError"
        assert len(view.trails[criterion.id]) == 1

    def test_upload_failure_reported(self, view, object_store, criterion):
        from opready.services.evidence_service import EvidenceFile

        with patch.object(object_store, "put", side_effect=StorageError("quota")):
            result = view.add_evidence(criterion.id, "file", "DR", EvidenceFile("a.pdf", b"1"))
        assert result.error_kind == "StorageError"


class TestAllocationInView:
    def test_preview_then_confirm(self, store, view, template):
        view.load()
        view.selection.toggle_add(template.id)
        preview = view.preview_allocation()
        assert preview.ok and len(preview.value) == 1

        result = view.confirm_allocation()

        assert result.ok
        assert view.selection.existing_ids == store.existing_template_ids(view.project_id)
        assert view.selection.to_add == set()
        assert len(view.criteria) == 1

    def test_failed_confirm_keeps_selection(self, store, view, template):
        view.load()
        view.selection.toggle_add(template.id)
        view.preview_allocation()
        with patch.object(store, "insert_criteria", side_effect=PersistenceError("down")):
            result = view.confirm_allocation()
        assert not result.ok
        assert view.selection.to_add == {template.id}
        assert len(view.pending_batch) == 1

    def test_remove_selected(self, store, view, template):
        view.load()
        view.selection.toggle_add(template.id)
        view.preview_allocation()
        view.confirm_allocation()
        view.selection.toggle_remove(template.id)

        result = view.remove_selected()

        assert result.ok
        assert view.selection.existing_ids == set()
        assert view.criteria == {}


def test_operation_result_to_dict():
    ok = OperationResult.success({"a": 1}).to_dict()
    assert ok == {"ok": True, "value": {"a": 1}, "error": None, "error_kind": None, "reverted": False}
    bad = OperationResult.failure(PersistenceError("boom"), reverted=True).to_dict()
    assert bad["error"] == "boom" and bad["error_kind"] == "PersistenceError" and bad["reverted"]
