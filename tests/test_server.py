from fastapi.testclient import TestClient

from fakes import FakeClock, RecordingEngineApi
from scenesync.api.server import create_app
from scenesync.compositor import LiveCompositor
from scenesync.inputs import AddInput, InputStreamRecord, StreamState


def make_client() -> tuple:
    compositor = LiveCompositor(RecordingEngineApi(), clock=FakeClock().now)
    compositor.store.dispatch(AddInput(InputStreamRecord(input_id="cam")))
    return TestClient(create_app(compositor)), compositor


def test_post_event_updates_store() -> None:
    client, compositor = make_client()
    response = client.post("/api/events", json={"type": "VIDEO_INPUT_PLAYING", "input_id": "global:cam"})

    assert response.status_code == 202
    assert response.json() == {"accepted": True}
    assert compositor.store.get("cam").video_state is StreamState.PLAYING


def test_malformed_event_is_accepted_and_dropped() -> None:
    client, compositor = make_client()
    response = client.post("/api/events", json={"type": "VIDEO_INPUT_PLAYING", "input_id": "broken"})

    assert response.status_code == 202
    assert compositor.store.get("cam").video_state is None


def test_websocket_event_stream() -> None:
    client, compositor = make_client()
    with client.websocket_connect("/ws/events") as websocket:
        websocket.send_json({"type": "AUDIO_INPUT_DELIVERED", "input_id": "global:cam"})
        websocket.send_text("not json")
        websocket.send_json({"type": "AUDIO_INPUT_PLAYING", "input_id": "global:cam"})

    assert compositor.store.get("cam").audio_state is StreamState.PLAYING


def test_outputs_listing() -> None:
    client, _ = make_client()
    payload = client.get("/api/outputs").json()

    assert payload["mode"] == "live"
    assert payload["outputs"] == []
    assert payload["inputs"][0]["inputId"] == "cam"
