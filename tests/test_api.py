import base64
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

sys.path.append(str(Path(__file__).resolve().parents[1]))

from datachat.core.prompts import SUMMARY_SYSTEM_PROMPT
from datachat.infrastructure.llm import UnconfiguredLLMClient, configure_llm_client
from datachat.workers.pipeline import reset_analysis_pipeline


class CannedLLM:
    def __init__(self, code: str) -> None:
        self.code = code

    def complete(self, system: str, user: str, *, max_tokens: int) -> str:
        if system == SUMMARY_SYSTEM_PROMPT:
            return "The data was analysed."
        return self.code


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("WORKSPACES_ROOT", str(tmp_path / "workspaces"))
    monkeypatch.setenv("UPLOADS_ROOT", str(tmp_path / "uploads"))
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    reset_analysis_pipeline()
    from datachat.app import create_app

    app = create_app()
    with TestClient(app) as test_client:
        yield test_client
    configure_llm_client(UnconfiguredLLMClient())
    reset_analysis_pipeline()


def _upload(client: TestClient, name: str, content: bytes) -> dict:
    response = client.post("/api/uploads", files=[("files", (name, content, "text/csv"))])
    assert response.status_code == 200
    items = response.json()["items"]
    assert len(items) == 1
    return items[0]


def test_upload_then_analyze_returns_output(client, tmp_path):
    configure_llm_client(CannedLLM("```python\nprint('mean temp', df['temp'].mean())\n```"))
    item = _upload(client, "weather.csv", b"city,temp\nOslo,4\nLima,20\n")
    assert item["format_tag"] == "csv"
    assert item["size_bytes"] > 0

    response = client.post(
        "/api/analyze",
        json={"message": "what is the mean temperature?", "files": [{"name": item["name"], "storage_path": item["storage_path"]}]},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["summary_text"] == "The data was analysed."
    assert data["generated_code"] == "print('mean temp', df['temp'].mean())"
    assert data["stdout_text"] == "mean temp 12.0\n"
    assert data["artifact_base64"] is None
    assert data["error_text"] is None
    assert data["schemas"][0]["column_names"] == ["city", "temp"]
    assert list((tmp_path / "workspaces").iterdir()) == []


def test_analyze_returns_artifact_as_base64(client):
    configure_llm_client(
        CannedLLM(
            "import matplotlib.pyplot as plt\n"
            "plt.plot(df['temp'], label='temp')\n"
            "plt.title('Temperature')\n"
            "plt.legend()\n"
        )
    )
    item = _upload(client, "weather.csv", b"city,temp\nOslo,4\nLima,20\nCairo,27\n")

    response = client.post(
        "/api/analyze",
        json={"message": "plot temperature", "files": [{"name": item["name"], "storage_path": item["storage_path"]}]},
    )

    assert response.status_code == 200
    artifact = base64.b64decode(response.json()["artifact_base64"])
    assert artifact.startswith(b"\x89PNG")


def test_analyze_reports_generation_failure(client):
    item = _upload(client, "weather.csv", b"city,temp\nOslo,4\n")

    response = client.post(
        "/api/analyze",
        json={"message": "plot", "files": [{"name": item["name"], "storage_path": item["storage_path"]}]},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["error_kind"] == "GenerationError"
    assert "not configured" in data["error_text"]


def test_analyze_requires_message(client):
    response = client.post("/api/analyze", json={"message": "  ", "files": [{"name": "a.csv", "storage_path": "a.csv"}]})
    assert response.status_code == 400


def test_analyze_requires_files(client):
    response = client.post("/api/analyze", json={"message": "summarize", "files": []})
    assert response.status_code == 400


def test_analyze_rejects_paths_outside_upload_area(client):
    response = client.post(
        "/api/analyze",
        json={"message": "summarize", "files": [{"name": "passwd.csv", "storage_path": "/etc/passwd"}]},
    )
    assert response.status_code == 400


def test_root_landing_page(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["analyze"] == "/api/analyze"
