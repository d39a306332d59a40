"""
HTTP / WebSocket API Tests
==========================

End-to-end through the FastAPI app with Starlette's TestClient.
"""

import asyncio
import base64
import logging

import pytest
from fastapi.testclient import TestClient

from frame_relay import main
from frame_relay.clients.producer import encode_frame
from frame_relay.config import RelayConfig
from frame_relay.main import app, get_hub, upload_stream
from frame_relay.models.stream import StreamKind
from frame_relay.relay import RelayHub


@pytest.fixture
def client():
    """TestClient with the app lifespan running (fresh relay hub)."""
    with TestClient(app) as client:
        yield client


class FakeRequest:
    """Just enough of a Request for calling upload_stream directly."""

    def __init__(self, body):
        self._body = body

    def stream(self):
        return self._body


async def body_of(*chunks, error=None):
    for chunk in chunks:
        await asyncio.sleep(0)
        yield chunk
    if error is not None:
        raise error


class TestUpload:
    """POST /stream/{kind}."""

    def test_missing_client_id(self, client):
        """Missing clientId is a 400 with a plain-text body and no state change."""
        response = client.post("/stream/screen", content=encode_frame(b"x"))

        assert response.status_code == 400
        assert response.text == "Missing clientId"
        assert response.headers["content-type"].startswith("text/plain")
        assert len(get_hub().registry) == 0

    def test_empty_client_id(self, client):
        """An empty clientId is treated as missing."""
        response = client.post("/stream/webcam?clientId=", content=b"")
        assert response.status_code == 400

    def test_unknown_kind(self, client):
        """Only screen and webcam are stream kinds."""
        response = client.post("/stream/audio?clientId=a", content=b"")
        assert response.status_code == 404

    def test_kind_is_case_sensitive(self, client):
        """Only the exact lower-case kind names are routed."""
        for kind in ("SCREEN", "Webcam"):
            response = client.post(f"/stream/{kind}?clientId=a", content=b"")
            assert response.status_code == 404
        assert len(get_hub().registry) == 0

    def test_upload_ok(self, client):
        """A complete upload answers 200 with an empty body."""
        body = encode_frame(b"one") + encode_frame(b"two")
        response = client.post("/stream/webcam?clientId=a", content=body)

        assert response.status_code == 200
        assert response.content == b""
        assert "a" not in get_hub().registry
        assert get_hub().broadcaster.metrics.frames_published == 2

    def test_chunked_upload(self, client):
        """A streamed (generator) body is decoded across chunk boundaries."""
        data = encode_frame(b"hello") + encode_frame(b"")

        def body():
            for i in range(0, len(data), 3):
                yield data[i:i + 3]

        response = client.post("/stream/screen?clientId=a", content=body())

        assert response.status_code == 200
        assert get_hub().broadcaster.metrics.frames_published == 2


class TestUploadOutcome:
    """Status codes for uploads that do not end normally."""

    @pytest.mark.asyncio
    async def test_broken_stream_is_not_ok(self, monkeypatch):
        """A body that fails mid-stream answers 500 and still deregisters."""
        hub = RelayHub()
        monkeypatch.setattr(main, "_hub", hub)
        request = FakeRequest(body_of(encode_frame(b"x"), error=RuntimeError("reset")))

        response = await upload_stream("screen", request, client_id="a")

        assert response.status_code == 500
        assert response.body == b"Stream Error"
        assert hub.broadcaster.metrics.frames_published == 1
        assert "a" not in hub.registry
        assert hub.active_sessions == 0

    @pytest.mark.asyncio
    async def test_idle_producer_gets_timeout(self, monkeypatch):
        """A producer cut off by the idle timeout answers 408."""
        hub = RelayHub(RelayConfig(producer_idle_timeout_seconds=0.01))
        monkeypatch.setattr(main, "_hub", hub)
        never = asyncio.Event()

        async def stalled():
            await never.wait()
            yield b""

        response = await upload_stream("webcam", FakeRequest(stalled()), client_id="a")

        assert response.status_code == 408
        assert "a" not in hub.registry

    @pytest.mark.asyncio
    async def test_normal_end_is_ok(self, monkeypatch):
        hub = RelayHub()
        monkeypatch.setattr(main, "_hub", hub)

        response = await upload_stream(
            "screen", FakeRequest(body_of(encode_frame(b"x"))), client_id="a"
        )

        assert response.status_code == 200
        assert response.body == b""


class TestView:
    """WS /view."""

    def test_snapshot_on_connect(self, client):
        """The first message is the presence snapshot."""
        with client.websocket_connect("/view") as ws:
            assert ws.receive_json() == {"type": "streams", "streams": []}

    def test_frames_and_presence(self, client):
        """A viewer sees presence on, the frames, then presence off."""
        with client.websocket_connect("/view") as ws:
            ws.receive_json()

            body = encode_frame(b"\xff\xd8one") + encode_frame(b"\xff\xd8two")
            response = client.post("/stream/screen?clientId=cam-1", content=body)
            assert response.status_code == 200

            active = ws.receive_json()
            first = ws.receive_json()
            second = ws.receive_json()
            inactive = ws.receive_json()

        assert active == {
            "type": "streams",
            "streams": [{"clientId": "cam-1", "hasScreen": True, "hasWebcam": False}],
        }
        assert first["type"] == "frame"
        assert first["clientId"] == "cam-1"
        assert first["streamType"] == "screen"
        assert base64.b64decode(first["data"]) == b"\xff\xd8one"
        assert base64.b64decode(second["data"]) == b"\xff\xd8two"
        assert inactive == {"type": "streams", "streams": []}

    def test_refresh(self, client):
        """A refresh request re-sends the snapshot."""
        with client.websocket_connect("/view") as ws:
            ws.receive_json()
            # mutate on the app's event loop, where producers run
            client.portal.call(get_hub().registry.set_active, "a", StreamKind.WEBCAM, True)
            ws.receive_json()

            ws.send_json({"type": "refresh"})
            snapshot = ws.receive_json()

        assert snapshot["streams"] == [
            {"clientId": "a", "hasScreen": False, "hasWebcam": True}
        ]

    def test_viewer_leaves(self, client):
        """Disconnected viewers are removed from the fan-out set."""
        with client.websocket_connect("/view") as ws:
            ws.receive_json()
            assert get_hub().broadcaster.viewer_count == 1

        response = client.post("/stream/screen?clientId=a", content=encode_frame(b"x"))
        assert response.status_code == 200
        assert get_hub().broadcaster.viewer_count == 0


class TestService:
    """Informational endpoints."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_metrics(self, client):
        """Metrics reflect relay activity."""
        client.post("/stream/webcam?clientId=a", content=encode_frame(b"x"))

        metrics = client.get("/metrics").json()
        assert metrics["frames_published"] == 1
        assert metrics["active_producers"] == 0
        assert metrics["viewers"] == 0

    def test_root(self, client):
        body = client.get("/").json()
        assert body["service"] == "FrameRelay"
        assert body["stream_kinds"] == ["screen", "webcam"]


class TestFaults:
    """Catch-all error handling and request logging."""

    def test_internal_fault_returns_500(self, monkeypatch):
        """An unexpected error is a plain-text 500 and leaves state intact."""
        with TestClient(app, raise_server_exceptions=False) as client:
            hub = get_hub()
            client.portal.call(hub.registry.set_active, "b", StreamKind.WEBCAM, True)

            def broken(client_id, kind):
                raise RuntimeError("boom")

            monkeypatch.setattr(hub, "open_session", broken)

            with client.websocket_connect("/view") as ws:
                ws.receive_json()

                response = client.post("/stream/screen?clientId=a", content=encode_frame(b"x"))

                assert response.status_code == 500
                assert response.text == "Internal Server Error"
                assert response.headers["content-type"].startswith("text/plain")
                assert [e.client_id for e in hub.registry.snapshot()] == ["b"]
                assert hub.broadcaster.viewer_count == 1

            assert client.get("/health").status_code == 200

    def test_requests_are_logged(self, client, caplog):
        """Each request is logged with method, path and status."""
        caplog.set_level(logging.INFO, logger="frame_relay.middleware")

        client.get("/health")
        client.post("/stream/audio?clientId=a", content=b"")

        lines = [
            record.getMessage()
            for record in caplog.records
            if record.name == "frame_relay.middleware"
        ]
        assert any(line.startswith("GET /health -> 200") for line in lines)
        assert any(line.startswith("POST /stream/audio -> 404") for line in lines)
