"""
Ollama client for structured flashcard generation.
Streams /api/generate output constrained by a JSON schema and parses it
into a flat field map.
"""

import json
import logging
import sys
import time
from typing import Any, Dict, List, Sequence

import requests

from anki_gen.errors import NetworkError, ParseError
from anki_gen.field_reconciler import ValidationMode

logger = logging.getLogger(__name__)


def build_format_schema(fields: Sequence[str], mode: ValidationMode) -> Dict[str, Any]:
    """
    Build the JSON schema passed as Ollama's `format` parameter.

    Strict mode requires every field as a non-empty string; optional mode
    only constrains the allowed keys.
    """
    properties = {}
    for field in fields:
        prop = {"type": "string"}
        if mode is ValidationMode.STRICT:
            prop["minLength"] = 1
        properties[field] = prop

    return {
        "type": "object",
        "properties": properties,
        "required": list(fields) if mode is ValidationMode.STRICT else [],
        "additionalProperties": False,
    }


def _to_field_value(key: str, value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (bool, int, float)):
        return str(value)
    raise ParseError(f"Field '{key}' has a nested value ({type(value).__name__}), expected a string")


def parse_field_map(response_text: str) -> Dict[str, str]:
    """
    Parse the model response into a field name -> value mapping.
    Tries the whole text first, then the outermost {...} span.
    """
    if not response_text or not response_text.strip():
        raise ParseError("Model returned an empty response")

    try:
        data = json.loads(response_text)
    except json.JSONDecodeError:
        start = response_text.find('{')
        end = response_text.rfind('}') + 1
        if start == -1 or end <= start:
            raise ParseError(f"No JSON object in model response: {response_text[:200]!r}")
        try:
            data = json.loads(response_text[start:end])
        except json.JSONDecodeError as e:
            raise ParseError(f"Could not parse model response as JSON: {e}") from e
        logger.debug("Recovered JSON object from surrounding text")

    if not isinstance(data, dict):
        raise ParseError(f"Expected a JSON object, got {type(data).__name__}")

    return {str(key).strip(): _to_field_value(key, value) for key, value in data.items()}


class OllamaClient:
    """Minimal client for a local Ollama server."""

    def __init__(self, base_url: str = "http://localhost:11434", model: str = "llama3",
                 timeout: float = 120, echo: bool = True):
        self.base_url = base_url.rstrip('/')
        self.model = model
        self.timeout = timeout
        self.echo = echo

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            send = requests.get if method == "GET" else requests.post
            response = send(url, timeout=self.timeout, **kwargs)
            response.raise_for_status()
        except requests.exceptions.ConnectionError as e:
            raise NetworkError(
                f"Could not connect to Ollama at {self.base_url}. "
                "Make sure it is running (ollama serve)."
            ) from e
        except requests.exceptions.Timeout as e:
            raise NetworkError(f"Ollama request timed out after {self.timeout}s") from e
        except requests.exceptions.HTTPError as e:
            e.response.close()
            raise NetworkError(f"Ollama returned status {e.response.status_code}") from e
        except requests.exceptions.RequestException as e:
            raise NetworkError(f"Ollama request failed: {e}") from e
        return response

    def list_models(self) -> List[str]:
        """Return the names of locally available models."""
        response = self._request("GET", "/api/tags")
        try:
            data = response.json()
        except ValueError as e:
            raise ParseError(f"Ollama /api/tags returned invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ParseError("Ollama /api/tags did not return a JSON object")
        models = data.get('models', [])
        if not isinstance(models, list) or not all(isinstance(m, dict) for m in models):
            raise ParseError("Ollama /api/tags 'models' is not a list of objects")
        return [m.get('name', '') for m in models]

    def generate(self, prompt: str, fields: Sequence[str],
                 mode: ValidationMode = ValidationMode.STRICT) -> Dict[str, str]:
        """
        Generate one card's fields.

        Args:
            prompt: Full prompt text
            fields: Field names the model must use as JSON keys
            mode: Validation mode, controls the output schema

        Returns:
            Field map parsed from the streamed response
        """
        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": True,
            "format": build_format_schema(fields, mode),
        }

        logger.debug(f"Sending request to {self.base_url}/api/generate (model {self.model})")
        start_time = time.time()
        response = self._request("POST", "/api/generate", json=payload, stream=True)

        chunks = []
        try:
            for line in response.iter_lines(decode_unicode=True):
                if not line or not line.strip():
                    continue
                try:
                    chunk = json.loads(line)
                except json.JSONDecodeError:
                    logger.debug(f"Skipping undecodable stream line: {line[:100]!r}")
                    continue

                if not isinstance(chunk, dict):
                    continue
                if chunk.get('error'):
                    raise NetworkError(f"Ollama error: {chunk['error']}")

                text = chunk.get('response', '')
                chunks.append(text)
                if self.echo:
                    sys.stdout.write(text)
                    sys.stdout.flush()

                if chunk.get('done'):
                    if self.echo:
                        sys.stdout.write("\n")
                    break
        except requests.exceptions.RequestException as e:
            raise NetworkError(f"Ollama stream interrupted: {e}") from e
        finally:
            response.close()

        full_response = ''.join(chunks)
        logger.debug(f"Response: {len(full_response)} characters in {time.time() - start_time:.2f}s")
        return parse_field_map(full_response)
