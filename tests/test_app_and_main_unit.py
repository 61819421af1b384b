import json

import pytest
from fastapi.testclient import TestClient

from algebra import storage
from app import service
from app.main import app
import main as entry


@pytest.fixture
def client(tmp_store) -> TestClient:
    return TestClient(app)


# ── HTTP API ─────────────────────────────────────────────────────────────

def test_simplify_endpoint(client) -> None:
    response = client.post("/api/simplify", json={"expression": "2x + 3x"})
    assert response.status_code == 200
    body = response.json()
    assert body["result"] == "5 * x"
    assert set(body["summary"]) == {"runtime_ms", "timestamp", "engine"}
    assert body["summary"]["engine"].startswith("SymCore")


def test_blank_expression_is_rejected(client) -> None:
    response = client.post("/api/simplify", json={"expression": "   "})
    assert response.status_code == 400


def test_parse_errors_carry_code_and_position(client) -> None:
    response = client.post("/api/simplify", json={"expression": "(1 + 2"})
    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["code"] == "P103"
    assert "position" in detail


def test_expand_endpoint(client) -> None:
    response = client.post("/api/expand", json={"expression": "(x + 1)^2"})
    assert response.json()["result"] == "1 + 2 * x + x^2"


def test_evaluate_endpoint(client) -> None:
    response = client.post("/api/evaluate", json={"expression": "x^2 + 1", "bindings": {"x": 3}})
    body = response.json()
    assert body["value"] == 10
    assert body["symbolic"] is False

    response = client.post("/api/evaluate", json={"expression": "x + y", "bindings": {"x": "2pi"}})
    assert response.json()["symbolic"] is True


def test_differentiate_endpoint(client) -> None:
    response = client.post("/api/differentiate", json={"expression": "x^3"})
    body = response.json()
    assert body["result"] == "3 * x^2"
    assert body["variable"] == "x"


def test_integrate_endpoint_reports_failure(client) -> None:
    response = client.post("/api/integrate", json={"expression": "sin(x^2)"})
    body = response.json()
    assert body["integrated"] is False
    assert body["result"] == "sin(x^2)"

    response = client.post("/api/integrate", json={"expression": "2x"})
    body = response.json()
    assert body["integrated"] is True
    assert body["result"] == "x^2"


def test_solve_endpoint(client) -> None:
    response = client.post("/api/solve", json={"equation": "x^2 = 9"})
    assert response.json()["solutions"] == [-3, 3]

    response = client.post("/api/solve", json={"equation": "x = x"})
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "S402"


def test_solve_system_endpoint(client) -> None:
    response = client.post("/api/solve-system", json={"equations": ["x + y = 3", "x - y = 1"]})
    body = response.json()
    assert body["consistent"] is True
    assert body["solution"] == {"x": 2, "y": 1}

    response = client.post("/api/solve-system", json={"equations": ["", "  "]})
    assert response.status_code == 400


def test_limit_endpoint(client) -> None:
    response = client.post("/api/limit", json={"expression": "sin(x)/x", "point": 0})
    body = response.json()
    assert body["value"] == 1
    assert body["variable"] == "x"

    response = client.post("/api/limit", json={"expression": "1/x", "direction": "right"})
    assert response.json()["value"] == "inf"

    response = client.post("/api/limit", json={"expression": "1/x"})
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "E208"

    response = client.post("/api/limit", json={"expression": "x", "direction": "up"})
    assert response.status_code == 422


def test_definite_integral_endpoint(client) -> None:
    response = client.post("/api/definite-integral",
                           json={"expression": "sin(x)", "lower": 0, "upper": "pi"})
    assert response.json()["value"] == 2

    response = client.post("/api/definite-integral",
                           json={"expression": "sin(x^2)", "method": "symbolic"})
    assert response.json()["detail"]["code"] == "U302"


def test_unexpected_errors_become_500(client, monkeypatch) -> None:
    def _boom(expression):
        raise RuntimeError("boom")

    monkeypatch.setattr(service, "simplify_expression", _boom)
    response = client.post("/api/simplify", json={"expression": "x"})
    assert response.status_code == 500
    assert "boom" in response.json()["detail"]


def test_to_jsonable() -> None:
    assert service.to_jsonable([1, 2.5, 2j]) == [1, 2.5, "2.0j"]
    assert service.to_jsonable(float("inf")) == "inf"


# ── Command line ─────────────────────────────────────────────────────────

@pytest.mark.parametrize(
    ("argv", "printed"),
    [
        (["simplify", "2x + 3x"], "5 * x"),
        (["solve", "x^2 = 9"], "[-3, 3]"),
        (["eval", "x^2 + y", "--set", "x=3", "--set", "y=1"], "10"),
        (["diff", "x^3"], "3 * x^2"),
        (["integrate", "sin(x^2)"], "sin(x^2)"),
        (["expand", "(x + 1)(x - 1)"], "-1 + x^2"),
        (["system", "x + y = 3", "x - y = 1"], "x = 2, y = 1"),
        (["limit", "sin(x)/x"], "1"),
        (["limit", "1/x", "--at", "inf"], "0"),
        (["limit", "1/x", "--side", "right"], "inf"),
        (["area", "2x", "--from", "0", "--to", "3"], "9"),
    ],
)
def test_cli_commands(tmp_store, capsys, argv, printed: str) -> None:
    assert entry.main(argv) == 0
    assert capsys.readouterr().out.strip() == printed


def test_cli_json_output(tmp_store, capsys) -> None:
    assert entry.main(["system", "x + y = 3", "x - y = 1", "--json"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["command"] == "system"
    assert payload["result"] == {"x": 2, "y": 1}


def test_cli_reports_errors(tmp_store, capsys) -> None:
    assert entry.main(["simplify", "(1 + 2"]) == 1
    assert "P103" in capsys.readouterr().err


def test_cli_bad_binding(tmp_store, capsys) -> None:
    assert entry.main(["eval", "x", "--set", "oops"]) == 1
    assert "name=value" in capsys.readouterr().err


def test_cli_save_records_history(tmp_store) -> None:
    assert entry.main(["simplify", "2x + 3x", "--save"]) == 0
    history = storage.get_history("simplify")
    assert history[0]["expression"] == "2x + 3x"
    assert history[0]["result"] == "5 * x"
