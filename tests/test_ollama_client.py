"""
Tests for the Ollama client, with requests replaced by fakes.
"""

import json

import pytest
import requests

from anki_gen.errors import NetworkError, ParseError
from anki_gen.field_reconciler import ValidationMode
from anki_gen.ollama_client import OllamaClient, build_format_schema, parse_field_map


class FakeResponse:
    def __init__(self, lines=None, payload=None, status_code=200):
        self.lines = lines or []
        self.payload = payload
        self.status_code = status_code
        self.closed = False

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} Error", response=self)

    def iter_lines(self, decode_unicode=False):
        return iter(self.lines)

    def json(self):
        if self.payload is None:
            raise ValueError("No JSON")
        return self.payload

    def close(self):
        self.closed = True


def stream_lines(text, pieces=3):
    """Split `text` into Ollama stream chunks."""
    size = max(1, len(text) // pieces)
    parts = [text[i:i + size] for i in range(0, len(text), size)]
    lines = [json.dumps({"response": part, "done": False}) for part in parts]
    lines.append(json.dumps({"response": "", "done": True}))
    return lines


@pytest.fixture
def client():
    return OllamaClient("http://localhost:11434/", "llama3", timeout=5, echo=False)


class TestBuildFormatSchema:
    def test_strict_requires_non_empty_fields(self):
        schema = build_format_schema(["Front", "Back"], ValidationMode.STRICT)
        assert schema["required"] == ["Front", "Back"]
        assert schema["properties"]["Front"] == {"type": "string", "minLength": 1}
        assert schema["additionalProperties"] is False

    def test_optional_requires_nothing(self):
        schema = build_format_schema(["Front", "Back"], ValidationMode.OPTIONAL)
        assert schema["required"] == []
        assert schema["properties"]["Back"] == {"type": "string"}


class TestParseFieldMap:
    def test_plain_object(self):
        assert parse_field_map('{"Front": " a ", " Back ": "b"}') == {"Front": "a", "Back": "b"}

    def test_object_inside_code_fence(self):
        text = 'Here you go:\n```json\n{"Front": "a"}\n```'
        assert parse_field_map(text) == {"Front": "a"}

    def test_scalars_become_strings(self):
        assert parse_field_map('{"Level": 3, "Note": null}') == {"Level": "3", "Note": ""}

    @pytest.mark.parametrize("text", ["", "no json here", '["a"]', '{"Front": ["a"]}', '{"Front": '])
    def test_invalid_responses(self, text):
        with pytest.raises(ParseError):
            parse_field_map(text)


class TestGenerate:
    def test_reassembles_streamed_response(self, client, monkeypatch):
        calls = []
        body = json.dumps({"Front": "猫", "Back": "cat"}, ensure_ascii=False)

        def fake_post(url, json=None, stream=False, timeout=None):
            calls.append({"url": url, "json": json, "stream": stream, "timeout": timeout})
            return FakeResponse(lines=stream_lines(body))

        monkeypatch.setattr(requests, "post", fake_post)

        fields = client.generate("prompt text", ["Front", "Back"], ValidationMode.STRICT)

        assert fields == {"Front": "猫", "Back": "cat"}
        assert calls[0]["url"] == "http://localhost:11434/api/generate"
        assert calls[0]["stream"] is True
        assert calls[0]["timeout"] == 5
        assert calls[0]["json"]["model"] == "llama3"
        assert calls[0]["json"]["prompt"] == "prompt text"
        assert calls[0]["json"]["format"]["required"] == ["Front", "Back"]

    def test_skips_blank_and_undecodable_lines(self, client, monkeypatch):
        lines = ["", "garbage", json.dumps({"response": '{"Front": "a"}', "done": True})]
        monkeypatch.setattr(requests, "post", lambda *a, **kw: FakeResponse(lines=lines))

        assert client.generate("p", ["Front"]) == {"Front": "a"}

    def test_stops_at_done(self, client, monkeypatch):
        lines = [
            json.dumps({"response": '{"Front": "a"}', "done": True}),
            json.dumps({"response": "trailing", "done": False}),
        ]
        monkeypatch.setattr(requests, "post", lambda *a, **kw: FakeResponse(lines=lines))

        assert client.generate("p", ["Front"]) == {"Front": "a"}

    def test_echoes_stream_to_stdout(self, monkeypatch, capsys):
        client = OllamaClient(echo=True)
        monkeypatch.setattr(
            requests, "post", lambda *a, **kw: FakeResponse(lines=stream_lines('{"Front": "a"}'))
        )

        client.generate("p", ["Front"])

        assert '{"Front": "a"}' in capsys.readouterr().out

    def test_stream_error_raises(self, client, monkeypatch):
        lines = [json.dumps({"error": "model 'llama3' not found"})]
        monkeypatch.setattr(requests, "post", lambda *a, **kw: FakeResponse(lines=lines))

        with pytest.raises(NetworkError, match="not found"):
            client.generate("p", ["Front"])

    def test_connection_error(self, client, monkeypatch):
        def refuse(*args, **kwargs):
            raise requests.exceptions.ConnectionError("refused")

        monkeypatch.setattr(requests, "post", refuse)

        with pytest.raises(NetworkError, match="Could not connect to Ollama"):
            client.generate("p", ["Front"])

    def test_http_error_status(self, client, monkeypatch):
        monkeypatch.setattr(requests, "post", lambda *a, **kw: FakeResponse(status_code=500))

        with pytest.raises(NetworkError, match="500"):
            client.generate("p", ["Front"])

    def test_http_error_closes_response(self, client, monkeypatch):
        response = FakeResponse(status_code=500)
        monkeypatch.setattr(requests, "post", lambda *a, **kw: response)

        with pytest.raises(NetworkError):
            client.generate("p", ["Front"])
        assert response.closed

    def test_unparseable_output(self, client, monkeypatch):
        monkeypatch.setattr(
            requests, "post", lambda *a, **kw: FakeResponse(lines=stream_lines("not a card"))
        )

        with pytest.raises(ParseError):
            client.generate("p", ["Front"])


class TestListModels:
    def test_returns_model_names(self, client, monkeypatch):
        payload = {"models": [{"name": "llama3:latest"}, {"name": "gemma3:4b"}]}
        urls = []

        def fake_get(url, timeout=None):
            urls.append(url)
            return FakeResponse(payload=payload)

        monkeypatch.setattr(requests, "get", fake_get)

        assert client.list_models() == ["llama3:latest", "gemma3:4b"]
        assert urls == ["http://localhost:11434/api/tags"]

    def test_invalid_json(self, client, monkeypatch):
        monkeypatch.setattr(requests, "get", lambda *a, **kw: FakeResponse(payload=None))

        with pytest.raises(ParseError):
            client.list_models()

    @pytest.mark.parametrize("payload", [["llama3"], {"models": "llama3"}, {"models": ["llama3"]}])
    def test_unexpected_shape(self, client, monkeypatch, payload):
        monkeypatch.setattr(requests, "get", lambda *a, **kw: FakeResponse(payload=payload))

        with pytest.raises(ParseError):
            client.list_models()

    def test_timeout(self, client, monkeypatch):
        def slow(*args, **kwargs):
            raise requests.exceptions.Timeout("slow")

        monkeypatch.setattr(requests, "get", slow)

        with pytest.raises(NetworkError, match="timed out"):
            client.list_models()
