from fastapi.testclient import TestClient

from app import app


def _join(ws, room_id: str, user_id: str) -> None:
    ws.send_json({"type": "join", "roomId": room_id, "userId": user_id})


def test_health_ok():
    with TestClient(app) as client:
        resp = client.get("/")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert "rooms" in body and "connections" in body


def test_room_lifecycle_over_websockets():
    with TestClient(app) as client:
        with client.websocket_connect("/ws") as a:
            _join(a, "app-r1", "A")
            assert a.receive_json() == {"type": "existing-users", "users": []}

            with client.websocket_connect("/ws") as b:
                _join(b, "app-r1", "B")
                assert b.receive_json() == {"type": "existing-users", "users": ["A"]}
                assert a.receive_json() == {"type": "user-joined", "userId": "B"}

                with client.websocket_connect("/") as c:
                    _join(c, "app-r1", "C")
                    assert c.receive_json() == {"type": "existing-users", "users": ["A", "B"]}
                    assert a.receive_json() == {"type": "user-joined", "userId": "C"}
                    assert b.receive_json() == {"type": "user-joined", "userId": "C"}

                    b.send_json({"type": "offer", "target": "C", "payload": {"sdp": "v=0"}, "from": "Z"})
                    assert c.receive_json() == {
                        "type": "offer",
                        "target": "C",
                        "payload": {"sdp": "v=0"},
                        "from": "B",
                    }

                    b.send_json({"type": "leave"})
                    assert a.receive_json() == {"type": "user-left", "userId": "B"}
                    assert c.receive_json() == {"type": "user-left", "userId": "B"}

                    resp = client.get("/rooms/app-r1")
                    assert resp.status_code == 200
                    assert [u["user_id"] for u in resp.json()["users"]] == ["A", "C"]

                    a.send_json({"type": "leave"})
                    assert c.receive_json() == {"type": "user-left", "userId": "A"}
                    c.send_json({"type": "leave"})
                    c.send_json({"type": "ping"})
                    assert c.receive_json() == {"type": "pong"}

                    assert client.get("/rooms/app-r1").status_code == 404


def test_transport_close_removes_member():
    with TestClient(app) as client:
        with client.websocket_connect("/ws") as a:
            _join(a, "app-r2", "A")
            assert a.receive_json()["type"] == "existing-users"

            with client.websocket_connect("/ws") as b:
                _join(b, "app-r2", "B")
                assert b.receive_json() == {"type": "existing-users", "users": ["A"]}
                assert a.receive_json() == {"type": "user-joined", "userId": "B"}

            assert a.receive_json() == {"type": "user-left", "userId": "B"}
            resp = client.get("/rooms/app-r2")
            assert resp.json()["member_count"] == 1


def test_bad_frames_get_error_envelopes():
    with TestClient(app) as client:
        with client.websocket_connect("/ws") as ws:
            ws.send_text("definitely not json")
            assert ws.receive_json() == {"type": "error", "message": "Invalid message format"}
            ws.send_json({"type": "answer", "payload": {}})
            assert ws.receive_json() == {"type": "error", "message": "Not joined to a room"}
            ws.send_json({"type": "join", "userId": "A"})
            assert ws.receive_json() == {"type": "error", "message": "Missing roomId or userId"}


def test_room_listing():
    with TestClient(app) as client:
        with client.websocket_connect("/ws") as a, client.websocket_connect("/ws") as b:
            _join(a, "app-list-1", "A")
            assert a.receive_json()["type"] == "existing-users"
            _join(b, "app-list-2", "B")
            assert b.receive_json()["type"] == "existing-users"

            resp = client.get("/rooms/")
            assert resp.status_code == 200
            rooms = {room["room_id"]: room["member_count"] for room in resp.json()["rooms"]}
            assert rooms["app-list-1"] == 1
            assert rooms["app-list-2"] == 1


def test_unknown_room_is_404():
    with TestClient(app) as client:
        resp = client.get("/rooms/does-not-exist")
        assert resp.status_code == 404
        assert resp.json() == {"detail": "Room not found"}
