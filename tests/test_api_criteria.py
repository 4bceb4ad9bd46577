"""HTTP surface: projects, criteria status and details, templates, health."""

import io

import pytest


# Uses shared fixtures from conftest.py: client, session (autouse), project, criterion

HEADERS = {"X-User": "lead@example.com"}


def _create_project(client, **kwargs):
    payload = {"name": "Checkout", "org_id": "org-1", "go_live_date": "2025-06-30"}
    payload.update(kwargs)
    return client.post("/api/v1/projects", json=payload)


# ═════════════════════════════════════════════════════════════════
# 1. Projects
# ═════════════════════════════════════════════════════════════════
class TestProjectAPI:
    def test_create_and_get(self, client):
        r = _create_project(client)
        assert r.status_code == 201
        pid = r.get_json()["id"]
        got = client.get(f"/api/v1/projects/{pid}").get_json()
        assert got["go_live_date"] == "2025-06-30"

    def test_create_requires_name(self, client):
        assert _create_project(client, name="").status_code == 400

    def test_bad_date_is_422(self, client):
        assert _create_project(client, go_live_date="30/06/2025").status_code == 422

    def test_missing_project_404(self, client):
        r = client.get("/api/v1/projects/does-not-exist")
        assert r.status_code == 404
        assert r.get_json()["code"] == "ERR_NOT_FOUND"

    def test_delete_cascades(self, client, store, object_store, project, criterion):
        pid, cid = project.id, criterion.id
        client.post(f"/api/v1/criteria/{cid}/evidence", json={"kind": "note", "narrative": "x"})
        upload = client.post(
            f"/api/v1/criteria/{cid}/evidence",
            data={"narrative": "Runbook", "file": (io.BytesIO(b"RUNBOOK"), "runbook.pdf", "application/pdf")},
            content_type="multipart/form-data",
        )
        path = upload.get_json()["evidence"]["file_path"]
        assert object_store.exists(path)

        r = client.delete(f"/api/v1/projects/{pid}")
        assert r.status_code == 200
        assert r.get_json()["files_released"] == 1
        assert store.get_criteria(pid) == []
        assert store.list_evidence(cid) == []
        assert not object_store.exists(path)

    def test_list_filtered_by_org(self, client):
        _create_project(client, org_id="org-1")
        _create_project(client, org_id="org-2")
        r = client.get("/api/v1/projects?org_id=org-2")
        assert r.get_json()["total"] == 1


# ═════════════════════════════════════════════════════════════════
# 2. Criteria
# ═════════════════════════════════════════════════════════════════
class TestCriteriaAPI:
    def test_create_and_list(self, client, project):
        r = client.post(f"/api/v1/projects/{project.id}/criteria", json={"title": "Runbook", "category": "Ops"})
        assert r.status_code == 201
        listed = client.get(f"/api/v1/projects/{project.id}/criteria").get_json()
        assert listed["total"] == 1
        assert listed["criteria"][0]["status_label"] == "Not started"

    def test_list_filters(self, client, project):
        client.post(f"/api/v1/projects/{project.id}/criteria", json={"title": "A", "status": "done"})
        client.post(f"/api/v1/projects/{project.id}/criteria", json={"title": "B"})
        r = client.get(f"/api/v1/projects/{project.id}/criteria?status=done")
        assert [c["title"] for c in r.get_json()["criteria"]] == ["A"]
        r = client.get(f"/api/v1/projects/{project.id}/criteria?category=Uncategorised")
        assert r.get_json()["total"] == 2

    def test_set_status(self, client, criterion):
        r = client.put(f"/api/v1/criteria/{criterion.id}/status", json={"status": "caveat"}, headers=HEADERS)
        assert r.status_code == 200
        body = r.get_json()
        assert body["criterion"]["status"] == "caveat"
        assert body["audit_note"]["note"] == "Status changed to: Caveat"
        assert body["audit_note"]["created_by"] == "lead@example.com"

    def test_set_status_invalid(self, client, criterion):
        r = client.put(f"/api/v1/criteria/{criterion.id}/status", json={"status": "closed"})
        assert r.status_code == 422
        assert r.get_json()["code"] == "ERR_VALIDATION_RULE"

    def test_set_status_missing_field(self, client, criterion):
        r = client.put(f"/api/v1/criteria/{criterion.id}/status", json={})
        assert r.status_code == 400

    def test_patch_details(self, client, criterion):
        r = client.patch(f"/api/v1/criteria/{criterion.id}", json={"owner_email": "ops@example.com"})
        assert r.status_code == 200
        assert r.get_json()["audit_notes"][0]["note"] == "Owner changed from (none) to ops@example.com"

    def test_patch_rejects_status(self, client, criterion):
        r = client.patch(f"/api/v1/criteria/{criterion.id}", json={"status": "done"})
        assert r.status_code == 422

    def test_delete_criterion(self, client, criterion):
        cid = criterion.id
        assert client.delete(f"/api/v1/criteria/{cid}").status_code == 200
        assert client.get(f"/api/v1/criteria/{cid}").status_code == 404

    def test_non_json_body_rejected(self, client, criterion):
        r = client.put(
            f"/api/v1/criteria/{criterion.id}/status",
            data="status=done", content_type="text/plain",
        )
        assert r.status_code == 415


# ═════════════════════════════════════════════════════════════════
# 3. Templates
# ═════════════════════════════════════════════════════════════════
class TestTemplateAPI:
    def test_create_and_list_scoped(self, client):
        client.post("/api/v1/criteria-templates", json={"title": "Global item"})
        client.post("/api/v1/criteria-templates", json={"title": "Org item", "org_id": "org-1"})
        client.post("/api/v1/criteria-templates", json={"title": "Other org", "org_id": "org-2"})
        r = client.get("/api/v1/criteria-templates?org_id=org-1")
        assert sorted(t["title"] for t in r.get_json()["templates"]) == ["Global item", "Org item"]

    @pytest.mark.parametrize("payload", [
        {"title": ""},
        {"title": "x", "default_due_offset_days": -1},
        {"title": "x", "default_due_offset_days": "7"},
        {"title": "x", "default_status": "closed"},
    ])
    def test_create_validation(self, client, payload):
        assert client.post("/api/v1/criteria-templates", json=payload).status_code == 422

    def test_import_outline(self, client):
        text = "- Runbook published\n- runbook published\n2. Alerts routed\n\nok\n"
        r = client.post("/api/v1/criteria-templates/import", json={"text": text, "category": "Ops"})
        assert r.status_code == 201
        titles = [t["title"] for t in r.get_json()["templates"]]
        assert titles == ["Runbook published", "Alerts routed"]

    def test_seed_command_is_idempotent(self, app, store):
        runner = app.test_cli_runner()
        first = runner.invoke(args=["seed-criteria-templates"])
        assert first.exit_code == 0
        count = len(store.list_templates())
        second = runner.invoke(args=["seed-criteria-templates"])
        assert "Seeded 0" in second.output
        assert len(store.list_templates()) == count


# ═════════════════════════════════════════════════════════════════
# 4. Health
# ═════════════════════════════════════════════════════════════════
class TestHealth:
    def test_ready(self, client):
        assert client.get("/api/v1/health/ready").status_code == 200

    def test_live(self, client):
        r = client.get("/api/v1/health/live")
        assert r.status_code == 200
        checks = r.get_json()["checks"]
        assert checks["database"]["status"] == "ok"
        assert checks["object_store"]["backend"] == "local"

    def test_request_id_header(self, client):
        r = client.get("/api/v1/health/ready", headers={"X-Request-ID": "abc123"})
        assert r.headers.get("X-Request-ID") == "abc123"
