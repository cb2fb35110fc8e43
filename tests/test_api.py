"""
API tests for the clip service, run against the real app with fake tools.
"""

import time

import pytest
from fastapi.testclient import TestClient

from app.main import create_app


@pytest.fixture
def client(settings, fake_tools):
    with TestClient(create_app(settings, tool_runner=fake_tools)) as test_client:
        yield test_client


def _wait_for_job(client, job_id, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        body = client.get(f"/jobs/{job_id}").json()
        if body["status"] in ("succeeded", "failed"):
            return body
        time.sleep(0.02)
    raise AssertionError(f"Job {job_id} did not finish")


class TestRoot:
    """Tests for the banner and health endpoints."""

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "Clip Relay is running"
        assert "/clip (POST)" in body["endpoints"]
        assert "/download/* (GET)" in body["endpoints"]
        assert "T" in body["timestamp"]

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "version": "1.0.0"}

    def test_readiness(self, client):
        body = client.get("/health/ready").json()
        assert body["ready"] is True
        assert body["tools"] == {"yt-dlp": True, "ffmpeg": True}
        assert body["dispatcher_running"] is True
        assert body["capacity"] == 2

    def test_readiness_without_tools(self, client, fake_tools):
        fake_tools.available = False
        body = client.get("/health/ready").json()
        assert body["ready"] is False
        assert body["tools"] == {"yt-dlp": False, "ffmpeg": False}


class TestClipEndpoint:
    """Tests for POST /clip."""

    def test_clip_returns_download_url(self, client, fake_tools):
        response = client.post(
            "/clip",
            json={"tweetUrl": "https://x.com/a/status/5", "start": "00:00:05", "end": "00:00:10"},
        )

        assert response.status_code == 200
        download_url = response.json()["downloadUrl"]
        assert download_url.startswith("http://clips.test/download/clipped_")
        assert download_url.endswith(".mp4")

        fetch_args = fake_tools.calls_for("yt-dlp")[0]
        assert fetch_args[-1] == "https://twitter.com/a/status/5"
        trim_args = fake_tools.calls_for("ffmpeg")[0]
        assert trim_args[trim_args.index("-ss") + 1] == "00:00:05"
        assert trim_args[trim_args.index("-to") + 1] == "00:00:10"
        assert trim_args[-1].endswith(download_url.rsplit("/", 1)[-1])

    def test_clip_without_range(self, client, fake_tools):
        response = client.post("/clip", json={"tweetUrl": "https://twitter.com/a/status/5"})
        assert response.status_code == 200
        trim_args = fake_tools.calls_for("ffmpeg")[0]
        assert "-ss" not in trim_args
        assert "-to" not in trim_args

    def test_published_clip_can_be_downloaded(self, client):
        download_url = client.post("/clip", json={"tweetUrl": "https://x.com/a/status/5"}).json()["downloadUrl"]
        filename = download_url.rsplit("/", 1)[-1]

        response = client.get(f"/download/{filename}")

        assert response.status_code == 200
        assert response.content == b"clipped-video"
        assert "attachment" in response.headers["content-disposition"]
        assert filename in response.headers["content-disposition"]

    @pytest.mark.parametrize("payload", [{"tweetUrl": ""}, {}, {"start": "1", "end": "2"}])
    def test_missing_url_is_bad_request(self, client, fake_tools, payload):
        response = client.post("/clip", json=payload)
        assert response.status_code == 400
        assert response.json() == {"detail": "Missing required fields"}
        assert fake_tools.calls == []

    def test_malformed_body_is_bad_request(self, client, fake_tools):
        response = client.post("/clip", content=b"not json", headers={"Content-Type": "application/json"})
        assert response.status_code == 400
        assert response.json() == {"detail": "error decoding input"}
        assert fake_tools.calls == []

    def test_unsafe_offset_is_bad_request(self, client, fake_tools):
        response = client.post("/clip", json={"tweetUrl": "https://x.com/a/status/5", "start": "5; rm -rf /"})
        assert response.status_code == 400
        assert fake_tools.calls == []

    def test_fetch_failure(self, client, fake_tools, download_dir):
        fake_tools.fail_tools.add("yt-dlp")

        response = client.post("/clip", json={"tweetUrl": "https://x.com/a/status/5"})

        assert response.status_code == 500
        assert response.json() == {"detail": "Error downloading the video"}
        assert fake_tools.calls_for("ffmpeg") == []
        assert not list(download_dir.glob("clipped_*"))

    def test_tool_output_is_not_sent_to_clients(self, client, fake_tools):
        fake_tools.fail_tools.add("yt-dlp")
        response = client.post("/clip", json={"tweetUrl": "https://x.com/a/status/5"})
        assert "simulated failure" not in response.text

    def test_trim_failure(self, client, fake_tools):
        fake_tools.fail_tools.add("ffmpeg")

        response = client.post("/clip", json={"tweetUrl": "https://x.com/a/status/5", "start": "1", "end": "2"})

        assert response.status_code == 500
        assert response.json() == {"detail": "Error clipping the video"}

    def test_options_without_origin(self, client):
        response = client.options("/clip")
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"
        assert "POST" in response.headers["access-control-allow-methods"]
        assert response.headers["access-control-allow-headers"] == "Content-Type"
        assert response.content == b""

    def test_cors_preflight(self, client):
        response = client.options(
            "/clip",
            headers={
                "Origin": "https://app.example",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "Content-Type, X-Requested-With",
            },
        )
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"
        assert "x-requested-with" in response.headers["access-control-allow-headers"].lower()
        assert response.content == b""

    def test_cors_header_on_response(self, client):
        response = client.get("/", headers={"Origin": "https://app.example"})
        assert response.headers["access-control-allow-origin"] == "*"


class TestDownloadEndpoint:
    """Tests for GET /download/{filename}."""

    def test_unknown_file(self, client):
        response = client.get("/download/clipped_missing.mp4")
        assert response.status_code == 404
        assert response.json()["detail"].startswith("File not found")

    def test_unpublished_file_on_disk_is_not_served(self, client, download_dir):
        (download_dir / "stray.mp4").write_bytes(b"stray")
        assert client.get("/download/stray.mp4").status_code == 404

    def test_failed_clip_is_not_served(self, client, fake_tools):
        fake_tools.fail_tools.add("ffmpeg")
        job_id = client.post("/jobs", json={"tweetUrl": "https://x.com/a/status/5"}).json()["jobId"]
        _wait_for_job(client, job_id)

        assert client.get(f"/download/clipped_{job_id}.mp4").status_code == 404


class TestJobsEndpoint:
    """Tests for the asynchronous job API."""

    def test_submit_and_poll(self, client):
        response = client.post("/jobs", json={"tweetUrl": "https://x.com/a/status/5", "end": "00:00:03"})

        assert response.status_code == 202
        body = response.json()
        assert body["status"] == "pending"

        final = _wait_for_job(client, body["jobId"])
        assert final["status"] == "succeeded"
        assert final["downloadUrl"] == f"http://clips.test/download/clipped_{body['jobId']}.mp4"
        assert final["error"] is None
        assert final["finishedAt"] is not None

    def test_failed_job_reports_kind(self, client, fake_tools):
        fake_tools.fail_tools.add("yt-dlp")
        job_id = client.post("/jobs", json={"tweetUrl": "https://x.com/a/status/5"}).json()["jobId"]

        final = _wait_for_job(client, job_id)

        assert final["status"] == "failed"
        assert final["downloadUrl"] is None
        assert final["error"] == {"kind": "download_failed", "message": "Error downloading the video"}

    def test_submit_invalid_job(self, client):
        response = client.post("/jobs", json={"tweetUrl": "ftp://x.com/a"})
        assert response.status_code == 400

    def test_unknown_job(self, client):
        assert client.get("/jobs/0-deadbeef").status_code == 404

    def test_list_jobs(self, client):
        first = client.post("/jobs", json={"tweetUrl": "https://x.com/a/status/1"}).json()["jobId"]
        second = client.post("/jobs", json={"tweetUrl": "https://x.com/a/status/2"}).json()["jobId"]
        _wait_for_job(client, first)
        _wait_for_job(client, second)

        jobs = client.get("/jobs", params={"status_filter": "succeeded"}).json()
        assert {job["jobId"] for job in jobs} == {first, second}

        assert len(client.get("/jobs", params={"limit": 1}).json()) == 1


class TestRestart:
    """Tests for clips that outlive the process that made them."""

    def test_clip_from_previous_run_is_still_served(self, settings, fake_tools, download_dir):
        with TestClient(create_app(settings, tool_runner=fake_tools)) as first:
            download_url = first.post("/clip", json={"tweetUrl": "https://x.com/a/status/5"}).json()["downloadUrl"]
        filename = download_url.rsplit("/", 1)[-1]

        with TestClient(create_app(settings, tool_runner=fake_tools)) as second:
            response = second.get(f"/download/{filename}")

        assert response.status_code == 200
        assert response.content == b"clipped-video"
