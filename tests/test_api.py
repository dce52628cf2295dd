import requests

from conftest import make_docx
from conversion_tracker.config import DOCX_MIME
from conversion_tracker.main import create_app
from fastapi.testclient import TestClient


def _upload(client, *names, mime=DOCX_MIME):
    files = [("files", (name, make_docx(name), mime)) for name in names]
    return client.post("/api/jobs", files=files)


def test_upload_creates_jobs(client, worker):
    response = _upload(client, "a.docx", "b.docx")

    assert response.status_code == 200
    payload = response.json()
    assert payload["message"] == "Files uploaded successfully"
    assert [j["filename"] for j in payload["jobs"]] == ["a.docx", "b.docx"]
    assert all(j["status"] == "converting" and j["progress"] == 25 for j in payload["jobs"])
    assert payload["limits"] == {"maxFiles": 10, "maxSizeMb": 10}
    assert len(worker.calls) == 2


def test_upload_rejects_wrong_type(client):
    response = _upload(client, "a.txt", mime="text/plain")
    assert response.status_code == 400
    assert "Unsupported file type" in response.json()["detail"]
    assert client.get("/api/jobs").json() == []


def test_list_is_newest_first(client):
    _upload(client, "first.docx")
    _upload(client, "second.docx")

    jobs = client.get("/api/jobs").json()
    assert [j["filename"] for j in jobs] == ["second.docx", "first.docx"]


def test_stats_endpoint(client):
    assert client.get("/api/jobs/stats").json() == {
        "totalUploaded": 0,
        "totalConverted": 0,
        "avgProcessingTime": "--",
    }

    job = _upload(client, "a.docx").json()["jobs"][0]
    client.post(f"/api/jobs/{job['id']}/status", json={"status": "completed", "resultRef": "r.pdf"})

    stats = client.get("/api/jobs/stats").json()
    assert stats["totalUploaded"] == 1
    assert stats["totalConverted"] == 1


def test_get_single_job(client):
    job = _upload(client, "a.docx").json()["jobs"][0]
    assert client.get(f"/api/jobs/{job['id']}").json()["id"] == job["id"]
    assert client.get("/api/jobs/missing").status_code == 404


def test_worker_callback_flow_and_download(client):
    job = _upload(client, "a.docx").json()["jobs"][0]

    not_ready = client.get(f"/api/jobs/{job['id']}/download")
    assert not_ready.status_code == 400
    assert not_ready.json() == {"detail": "Conversion not completed yet"}

    tick = client.post(f"/api/jobs/{job['id']}/status", json={"status": "converting", "progress": 70, "attempt": 1})
    assert tick.status_code == 200
    assert tick.json()["progress"] == 70

    done = client.post(
        f"/api/jobs/{job['id']}/status",
        json={"status": "completed", "progress": 100, "resultRef": f"converted/{job['id']}/a.pdf", "attempt": 1},
    )
    assert done.status_code == 200
    assert done.json()["completedAt"] is not None

    download = client.get(f"/api/jobs/{job['id']}/download")
    assert download.status_code == 200
    assert download.json() == {
        "downloadUrl": f"https://storage.example/converted/{job['id']}/a.pdf?expires=3600",
        "expiresIn": 3600,
    }


def test_worker_callback_unknown_job(client):
    response = client.post("/api/jobs/missing/status", json={"status": "completed"})
    assert response.status_code == 404


def test_worker_callback_rejects_malformed_payload(client):
    job = _upload(client, "a.docx").json()["jobs"][0]
    assert client.post(f"/api/jobs/{job['id']}/status", json={"progress": 150}).status_code == 422
    assert client.post(f"/api/jobs/{job['id']}/status", json={"status": "exploded"}).status_code == 422
    assert client.post(f"/api/jobs/{job['id']}/status", json={"status": "uploading"}).status_code == 422
    assert client.get(f"/api/jobs/{job['id']}").json()["status"] == "converting"
    assert client.post(f"/api/jobs/{job['id']}/status", json={"filename": "x"}).status_code == 422


def test_download_unknown_job(client):
    assert client.get("/api/jobs/missing/download").status_code == 404


def test_delete(client):
    job = _upload(client, "a.docx").json()["jobs"][0]

    response = client.delete(f"/api/jobs/{job['id']}")
    assert response.status_code == 200
    assert response.json() == {"message": "Job deleted successfully"}
    assert client.delete(f"/api/jobs/{job['id']}").status_code == 404
    assert client.post(f"/api/jobs/{job['id']}/status", json={"status": "completed"}).status_code == 404
    assert client.get("/api/jobs").json() == []


def test_retry(client, worker):
    job = _upload(client, "a.docx").json()["jobs"][0]
    client.post(f"/api/jobs/{job['id']}/status", json={"status": "failed", "error": "timeout"})

    response = client.post(f"/api/jobs/{job['id']}/retry")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "converting"
    assert body["progress"] == 25
    assert body["error"] is None
    assert body["attempt"] == 2
    assert worker.calls[-1][3] == 2

    assert client.post("/api/jobs/missing/retry").status_code == 404


def test_storage_outage_keeps_batch_alive(client, objects):
    objects.fail_puts_for.add("down.docx")
    response = _upload(client, "down.docx", "up.docx")

    assert response.status_code == 200
    assert [j["filename"] for j in response.json()["jobs"]] == ["up.docx"]
    statuses = {j["filename"]: j["status"] for j in client.get("/api/jobs").json()}
    assert statuses == {"down.docx": "failed", "up.docx": "converting"}


def test_callback_requires_token_outside_emulation(settings, service):
    settings.TASKS_EMULATE = False
    client = TestClient(create_app(settings=settings, job_service=service))

    assert client.post("/api/jobs/any/status", json={"progress": 10}).status_code == 401
    bad = client.post("/api/jobs/any/status", json={"progress": 10}, headers={"Authorization": "Basic abc"})
    assert bad.status_code == 401


def test_health_and_config(client):
    health = client.get("/api/healthz").json()
    assert health["status"] == "ok"
    assert health["jobStore"] == "memory"

    config = client.get("/api/config").json()
    assert config["maxSizeMb"] == 10
    assert config["acceptedMime"] == [DOCX_MIME]
    assert config["acceptedExtensions"] == [".docx"]


def test_transport_error_on_upload_keeps_batch_alive(client, objects, worker):
    real_put = objects.put

    def flaky_put(key, data, content_type):
        if "down.docx" in key:
            raise requests.ConnectionError("connection aborted")
        return real_put(key, data, content_type)

    objects.put = flaky_put
    response = _upload(client, "down.docx", "up.docx")

    assert response.status_code == 200
    assert [j["filename"] for j in response.json()["jobs"]] == ["up.docx"]
    assert len(worker.calls) == 1
    jobs = {j["filename"]: j for j in client.get("/api/jobs").json()}
    assert jobs["down.docx"]["status"] == "failed"
    assert "connection aborted" in jobs["down.docx"]["error"]
