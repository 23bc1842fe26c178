import os
import threading
import time

import pytest
import requests

from lenswatch.ai import AnalysisService, CredentialStore, GeminiAIClient, SimulatedAIClient, build_ai_client
from lenswatch.ai.analysis_service import PROMPT_TEMPLATE, markdown_to_html
from lenswatch.ai.client import AIResult, BaseAIClient, HTTPAIClient
from lenswatch.config import Settings
from lenswatch.exceptions import (
    AnalysisCancelledError,
    AnalysisResponseError,
    AnalysisServiceError,
    AnalysisStatusError,
    AnalysisTimeoutError,
    ConfigError,
    MissingCredentialError,
    ValidationError,
)


class DummyResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload


def _gemini_body(text):
    return {"candidates": [{"content": {"parts": [{"text": text}], "role": "model"}}]}


def test_simulated_analysis(workshop_log):
    result = AnalysisService(SimulatedAIClient()).analyse(workshop_log)

    assert result["source"] == "simulated"
    assert "**[SIMULATED]**" in result["content"]
    assert "<strong>[SIMULATED]</strong>" in result["html"]
    assert result["record_count"] == len(workshop_log)


def test_analysis_refuses_empty_log():
    with pytest.raises(ValidationError):
        AnalysisService(SimulatedAIClient()).analyse([])


def test_gemini_request_shape(monkeypatch, workshop_log):
    captured = {}

    def fake_post(url, json=None, headers=None, timeout=None):
        captured.update(url=url, json=json, headers=headers, timeout=timeout)
        return DummyResponse(payload=_gemini_body("1. **Mach01** revient souvent"))

    monkeypatch.setattr(requests, "post", fake_post)
    client = GeminiAIClient(api_key="secret", system_instruction="En tant qu'expert", timeout=5)

    result = AnalysisService(client).analyse(workshop_log)

    assert captured["url"].endswith("/models/gemini-2.5-pro:generateContent")
    assert captured["headers"]["x-goog-api-key"] == "secret"
    assert captured["timeout"] == 5
    assert captured["json"]["systemInstruction"]["parts"][0]["text"] == "En tant qu'expert"
    sent = captured["json"]["contents"][0]["parts"][0]["text"]
    assert sent.startswith(PROMPT_TEMPLATE)
    assert '"compteurLaser": "1520"' in sent
    assert result["source"] == "remote"
    assert result["html"].startswith('<ol class="list-decimal list-inside pl-4"><li><strong>Mach01</strong>')


def test_gemini_timeout(monkeypatch):
    def fake_post(*args, **kwargs):
        raise requests.Timeout("read timed out")

    monkeypatch.setattr(requests, "post", fake_post)
    with pytest.raises(AnalysisTimeoutError):
        GeminiAIClient(api_key="k").generate("p", "[]")


def test_gemini_unreachable(monkeypatch):
    def fake_post(*args, **kwargs):
        raise requests.ConnectionError("no route")

    monkeypatch.setattr(requests, "post", fake_post)
    with pytest.raises(AnalysisServiceError, match="unreachable"):
        GeminiAIClient(api_key="k").generate("p", "[]")


def test_gemini_error_status(monkeypatch):
    calls = []

    def fake_post(*args, **kwargs):
        calls.append(1)
        return DummyResponse(status_code=500, payload={"error": {"message": "backend overloaded"}})

    monkeypatch.setattr(requests, "post", fake_post)
    with pytest.raises(AnalysisStatusError) as excinfo:
        GeminiAIClient(api_key="k").generate("p", "[]")

    assert excinfo.value.status_code == 500
    assert "backend overloaded" in str(excinfo.value)
    assert len(calls) == 1


@pytest.mark.parametrize(
    "response",
    [
        DummyResponse(payload=None, text="<html>"),
        DummyResponse(payload=["not", "an", "object"]),
        DummyResponse(payload={"candidates": []}),
        DummyResponse(payload=_gemini_body("   ")),
    ],
)
def test_gemini_malformed_body(monkeypatch, response):
    monkeypatch.setattr(requests, "post", lambda *a, **k: response)
    with pytest.raises(AnalysisResponseError):
        GeminiAIClient(api_key="k").generate("p", "[]")


def test_remote_client_requires_key():
    with pytest.raises(MissingCredentialError):
        GeminiAIClient(api_key=None)
    with pytest.raises(MissingCredentialError):
        HTTPAIClient(base_url="http://ai.local/v1/chat", api_key="", model="m")


def test_http_client_reads_chat_completion(monkeypatch):
    monkeypatch.setattr(
        requests,
        "post",
        lambda *a, **k: DummyResponse(payload={"choices": [{"message": {"content": "- ok"}}]}),
    )
    result = HTTPAIClient(base_url="http://ai.local/v1/chat", api_key="k", model="m").generate("p", "[]")
    assert result.content == "- ok"


def test_build_ai_client_by_provider():
    cfg = Settings()
    cfg.ai.provider = "offline"
    assert isinstance(build_ai_client(cfg, api_key=None), SimulatedAIClient)

    cfg.ai.provider = "gemini"
    assert isinstance(build_ai_client(cfg, api_key="k"), GeminiAIClient)
    with pytest.raises(MissingCredentialError):
        build_ai_client(cfg, api_key=None)

    cfg.ai.provider = "carrier-pigeon"
    with pytest.raises(ConfigError):
        build_ai_client(cfg, api_key="k")


class SlowClient(BaseAIClient):
    def __init__(self, delay):
        self.delay = delay

    def generate(self, prompt, context):
        time.sleep(self.delay)
        return AIResult(content="late answer", source="remote")


def test_cancel_abandons_pending_call(workshop_log):
    cancel = threading.Event()
    timer = threading.Timer(0.1, cancel.set)
    timer.start()
    started = time.monotonic()
    try:
        with pytest.raises(AnalysisCancelledError):
            AnalysisService(SlowClient(delay=2.0)).analyse(workshop_log, cancel=cancel)
    finally:
        timer.cancel()
    assert time.monotonic() - started < 1.5


def test_cancel_before_start(workshop_log):
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(AnalysisCancelledError):
        AnalysisService(SimulatedAIClient()).analyse(workshop_log, cancel=cancel)


def test_uncancelled_event_returns_result(workshop_log):
    result = AnalysisService(SlowClient(delay=0.05)).analyse(workshop_log, cancel=threading.Event())
    assert result["content"] == "late answer"


def test_markdown_to_html():
    text = "Synthèse *rapide*\n1. **Mach01** : nettoyer\n2. Mach02\n- point\nFin <script>"

    rendered = markdown_to_html(text)

    assert rendered == (
        "Synthèse <em>rapide</em>"
        '<ol class="list-decimal list-inside pl-4"><li><strong>Mach01</strong> : nettoyer</li><li>Mach02</li></ol>'
        '<ul class="list-disc list-inside pl-4"><li>point</li></ul>'
        "Fin &lt;script&gt;"
    )


def test_markdown_line_breaks():
    assert markdown_to_html("a\nb") == "a<br />b"
    assert markdown_to_html("") == ""


def test_credential_store_roundtrip(tmp_path):
    creds = CredentialStore(tmp_path / "secret" / "key.json", fallback="from-settings")
    assert creds.get() == "from-settings"

    creds.save("  typed-key ")
    assert creds.get() == "typed-key"
    if os.name == "posix":
        assert (creds.path.stat().st_mode & 0o777) == 0o600

    creds.clear()
    creds.clear()
    assert creds.get() == "from-settings"


def test_credential_store_rejects_blank_key(tmp_path):
    creds = CredentialStore(tmp_path / "key.json")
    with pytest.raises(ValueError):
        creds.save("   ")
    assert creds.is_configured is False


def test_credential_store_ignores_corrupt_file(tmp_path):
    path = tmp_path / "key.json"
    path.write_text("{not json", encoding="utf-8")
    assert CredentialStore(path).get() is None
