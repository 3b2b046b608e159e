"""API tests using FastAPI TestClient: /run, /parse and server-side caps."""

from fastapi.testclient import TestClient

from backend.app.main import MAX_DELAY_S, _cap_settings, app
from backend.turtlescript.interpreter import Interpreter

client = TestClient(app)


def test_run_square_corner():
    r = client.post("/run", json={"code": "pen down\nforward 10\nright 90\nforward 10"})
    assert r.status_code == 200
    body = r.json()
    assert body["errors"] is None
    assert body["result"]["final_heading"] == 90
    assert (body["result"]["final_x"], body["result"]["final_y"]) == (10, 10)
    assert isinstance(body["duration_ms"], int)
    assert "canvas" not in body


def test_run_all_engines_agree():
    code = "pen down\nvar i = 0\nrepeat until i == 4:\n  forward 3\n  right 90\n  i = i + 1"
    results = []
    for engine in ("sync", "async", "step"):
        r = client.post("/run", json={"code": code, "engine": engine, "settings": {"start_x": 5, "start_y": 5}})
        body = r.json()
        assert body["errors"] is None
        results.append(body["result"])
    assert results[0] == results[1] == results[2]


def test_run_with_render_returns_canvas():
    r = client.post("/run", json={"code": "hsv 200 80 90\npen down\nforward 2", "render": True})
    canvas = r.json()["canvas"]
    assert [(p["x"], p["y"]) for p in canvas["pixels"]] == [(1, 0), (2, 0)]
    assert canvas["pixels"][0]["color"] == {"h": 200.0, "s": 80.0, "v": 90.0}


def test_run_syntax_error():
    r = client.post("/run", json={"code": "xyz 1"})
    assert r.status_code == 200
    err = r.json()["errors"]
    assert err["code"] == "SYNTAX_ERROR"
    assert err["line"] == 1
    assert "Unknown command" in err["message"]


def test_run_step_limit_is_capped_server_side(monkeypatch):
    # lower the server default so the client request cannot raise it back
    monkeypatch.setattr("backend.turtlescript.interpreter.DEFAULT_MAX_STEPS", 50)
    code = "repeat until 0:\n  left 1"
    r = client.post("/run", json={"code": code, "settings": {"max_steps": 10**12}})
    body = r.json()
    assert body["errors"]["code"] == "STEP_LIMIT"
    assert body["result"]["completed"] is False


def test_run_output_limit_through_settings():
    r = client.post("/run", json={"code": "left 1\nleft 1\nleft 1", "settings": {"max_operations": 2}})
    assert r.json()["errors"]["code"] == "OUTPUT_LIMIT"


def test_run_bad_settings_are_server_error():
    r = client.post("/run", json={"code": "forward 1", "settings": {"max_steps": "lots"}})
    body = r.json()
    assert body["errors"]["code"] == "SERVER_ERROR"
    assert body["result"] is None


def test_run_unknown_engine():
    r = client.post("/run", json={"code": "forward 1", "engine": "gpu"})
    assert r.json()["errors"]["code"] == "INVALID_ENGINE"


def test_run_requires_code():
    r = client.post("/run", json={})
    assert r.status_code == 422


def test_parse_endpoint():
    r = client.post("/parse", json={"code": "pen down\nf 2"})
    assert r.json() == {
        "instructions": [
            {"type": "PEN", "state": "down", "line": 1},
            {"type": "MOVE", "direction": "forward", "value": {"type": "num", "value": 2.0}, "line": 2},
        ]
    }
    r = client.post("/parse", json={"code": "repeat 2\n  left 1"})
    assert r.json()["errors"]["code"] == "SYNTAX_ERROR"


def test_cap_settings_clamps():
    """Overly large limits are lowered to fresh Interpreter defaults.

    Start options pass through untouched; the interpreter validates them.
    """
    defaults = Interpreter()
    capped = _cap_settings({
        "max_steps": 10_000_000_000,
        "max_operations": 10_000_000_000,
        "delay": 30,
        "start_x": 12,
        "initial_hsv": {"h": 1, "s": 2, "v": 3},
    })
    assert capped["max_steps"] == defaults.max_steps
    assert capped["max_operations"] == defaults.max_operations
    assert capped["delay"] == MAX_DELAY_S
    assert capped["start_x"] == 12
    assert capped["initial_hsv"] == {"h": 1, "s": 2, "v": 3}


def test_cap_settings_keeps_smaller_values():
    capped = _cap_settings({"max_steps": 50, "max_operations": 5, "delay": -1})
    assert capped == {"max_steps": 50, "max_operations": 5, "delay": 0.0}
    assert _cap_settings(None)["max_steps"] == Interpreter().max_steps
