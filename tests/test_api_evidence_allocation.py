"""HTTP surface: evidence trail, allocation review and reporting."""

import io

# Uses shared fixtures from conftest.py: client, session (autouse), project, template, criterion


# ═════════════════════════════════════════════════════════════════
# 1. Evidence
# ═════════════════════════════════════════════════════════════════
class TestEvidenceAPI:
    def test_link_creates_two_rows(self, client, criterion):
        r = client.post(
            f"/api/v1/criteria/{criterion.id}/evidence",
            json={"kind": "link", "narrative": "see attached SOP", "url": "https://example.com/sop"},
        )
        assert r.status_code == 201
        trail = client.get(f"/api/v1/criteria/{criterion.id}/evidence").get_json()
        assert trail["total"] == 2
        notes = [e["note"] for e in trail["evidence"]]
        assert "Link added: https://example.com/sop" in notes
        assert "see attached SOP" in notes

    def test_blank_narrative_422(self, client, criterion):
        r = client.post(f"/api/v1/criteria/{criterion.id}/evidence", json={"kind": "note", "narrative": " "})
        assert r.status_code == 422
        assert client.get(f"/api/v1/criteria/{criterion.id}/evidence").get_json()["total"] == 0

    def test_file_upload_and_download(self, client, criterion):
        r = client.post(
            f"/api/v1/criteria/{criterion.id}/evidence",
            data={"narrative": "Signed DR plan", "file": (io.BytesIO(b"PDFDATA"), "dr plan.pdf", "application/pdf")},
            content_type="multipart/form-data",
        )
        assert r.status_code == 201
        ev = r.get_json()["evidence"]
        assert ev["size_bytes"] == 7
        assert r.get_json()["cover_note"]["note"] == "File uploaded: dr plan.pdf"

        dl = client.get(f"/api/v1/evidence/{ev['id']}/file")
        assert dl.status_code == 200
        assert dl.data == b"PDFDATA"

    def test_file_kind_requires_multipart(self, client, criterion):
        r = client.post(f"/api/v1/criteria/{criterion.id}/evidence", json={"kind": "file", "narrative": "x"})
        assert r.status_code == 400

    def test_delete_link_then_note_refused(self, client, criterion):
        link = client.post(
            f"/api/v1/criteria/{criterion.id}/evidence",
            json={"kind": "link", "narrative": "SOP", "url": "https://x"},
        ).get_json()
        r = client.delete(f"/api/v1/evidence/{link['evidence']['id']}")
        assert r.status_code == 200
        assert r.get_json()["removal_note"]["note"] == "Link removed: https://x"

        r = client.delete(f"/api/v1/evidence/{link['cover_note']['id']}")
        assert r.status_code == 422
        assert "Notes cannot be deleted" in r.get_json()["error"]

    def test_filter_by_kind(self, client, criterion):
        client.post(f"/api/v1/criteria/{criterion.id}/evidence", json={"kind": "link", "narrative": "a", "url": "u"})
        r = client.get(f"/api/v1/criteria/{criterion.id}/evidence?kind=link")
        assert r.get_json()["total"] == 1


# ═════════════════════════════════════════════════════════════════
# 2. Allocation
# ═════════════════════════════════════════════════════════════════
class TestAllocationAPI:
    def test_preview_commit_remove(self, client, project, template):
        base = f"/api/v1/projects/{project.id}/allocation"

        diff = client.get(base).get_json()
        assert [t["id"] for t in diff["addable"]] == [template.id]
        assert diff["present"] == []

        preview = client.post(f"{base}/preview", json={"template_ids": [template.id]})
        assert preview.status_code == 200
        rows = preview.get_json()["rows"]
        assert rows[0]["due_date"] == "2025-01-13"

        commit = client.post(f"{base}/commit", json={"rows": rows})
        assert commit.status_code == 201
        assert commit.get_json()["existing_template_ids"] == [template.id]

        diff = client.get(f"{base}?exclude_existing=1").get_json()
        assert [t["id"] for t in diff["present"]] == [template.id]
        assert diff["visible"] == []

        removed = client.post(f"{base}/remove", json={"template_ids": [template.id]})
        assert removed.status_code == 200
        assert removed.get_json()["existing_template_ids"] == []

    def test_preview_with_start_anchor(self, client, project, template):
        r = client.post(
            f"/api/v1/projects/{project.id}/allocation/preview",
            json={"template_ids": [template.id], "anchor": "start"},
        )
        assert r.get_json()["rows"][0]["due_date"] == "2024-09-24"

    def test_preview_bad_anchor(self, client, project, template):
        r = client.post(
            f"/api/v1/projects/{project.id}/allocation/preview",
            json={"template_ids": [template.id], "anchor": "cutover"},
        )
        assert r.status_code == 422

    def test_commit_empty_batch(self, client, project):
        r = client.post(f"/api/v1/projects/{project.id}/allocation/commit", json={"rows": []})
        assert r.status_code == 422

    def test_commit_unknown_template(self, client, store, project, template):
        r = client.post(
            f"/api/v1/projects/{project.id}/allocation/commit",
            json={"rows": [{"template_id": template.id}, {"template_id": "not-a-template"}]},
        )
        assert r.status_code == 422
        assert store.existing_template_ids(project.id) == set()


# ═════════════════════════════════════════════════════════════════
# 3. Reporting
# ═════════════════════════════════════════════════════════════════
class TestReportingAPI:
    def test_dashboard(self, client, project, criterion):
        client.put(f"/api/v1/criteria/{criterion.id}/status", json={"status": "done"})
        r = client.get(f"/api/v1/projects/{project.id}/dashboard?today=2025-01-10")
        assert r.status_code == 200
        body = r.get_json()
        assert body["summary"]["done"] == 1
        assert body["summary"]["percent_done"] == 100
        assert body["by_category"][0]["category"] == "Monitoring"
        assert sum(w["notes"] for w in body["evidence_by_week"]) == 1

    def test_certificate(self, client, project, criterion):
        client.put(f"/api/v1/criteria/{criterion.id}/status", json={"status": "caveat"})
        client.patch(f"/api/v1/criteria/{criterion.id}", json={"caveat_reason": "Alert tuning open"})
        cert = client.get(f"/api/v1/projects/{project.id}/certificate").get_json()
        assert cert["summary"]["caveats"] == 1
        assert cert["caveat_items"][0]["caveat_reason"] == "Alert tuning open"
        assert cert["project"]["name"] == "Payments Platform"
