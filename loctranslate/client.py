import http.client
import json
import logging
import time
import urllib.parse
from dataclasses import dataclass

from .cache import TranslationCache
from .config import Settings
from .errors import TranslationError

LOGGER = logging.getLogger(__name__)

PROBE_TEXT = "こんにちは"
RESPONSE_FIELDS = ("content", "translation", "text")
JSON_HEADERS = {
    "Content-Type": "application/json",
    "Connection": "keep-alive",
}


def build_sugoi_payload(text: str) -> dict:
    return {"message": "translate sentences", "content": text}


REQUEST_FORMATS = {
    "sugoi": build_sugoi_payload,
}


@dataclass(frozen=True)
class Endpoint:
    url: str
    request_format: str = "sugoi"


def extract_translation(response) -> str:
    if isinstance(response, str):
        return response
    if isinstance(response, dict):
        for key in RESPONSE_FIELDS:
            value = response.get(key)
            if isinstance(value, str):
                return value
    raise TranslationError(f"Unexpected response shape: {type(response).__name__}")


class EndpointClient:
    """Keep-alive connection to one translation server."""

    def __init__(self, endpoint: Endpoint, timeout: float) -> None:
        parts = urllib.parse.urlsplit(endpoint.url)
        if parts.scheme not in ("http", "https") or not parts.hostname:
            raise ValueError(f"Invalid translation server URL: {endpoint.url}")
        self.endpoint = endpoint
        self.timeout = timeout
        if parts.scheme == "https":
            self._connection_class = http.client.HTTPSConnection
        else:
            self._connection_class = http.client.HTTPConnection
        self._host = parts.hostname
        self._port = parts.port
        self._path = urllib.parse.urlunsplit(("", "", parts.path or "/", parts.query, ""))
        self._conn: http.client.HTTPConnection | None = None

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _exchange(self, body: bytes) -> tuple[int, bytes]:
        if self._conn is None:
            self._conn = self._connection_class(self._host, self._port, timeout=self.timeout)
        self._conn.request("POST", self._path, body=body, headers=JSON_HEADERS)
        response = self._conn.getresponse()
        return response.status, response.read()

    def translate(self, text: str) -> str:
        payload = REQUEST_FORMATS[self.endpoint.request_format](text)
        body = json.dumps(payload).encode("utf-8")
        try:
            try:
                status, data = self._exchange(body)
            except http.client.RemoteDisconnected:
                # The server dropped an idle keep-alive connection.
                self.close()
                status, data = self._exchange(body)
        except (OSError, http.client.HTTPException) as exc:
            self.close()
            raise TranslationError(f"{self.endpoint.url}: {exc}") from exc
        if status >= 400:
            message = data[:200].decode("utf-8", errors="replace")
            raise TranslationError(f"{self.endpoint.url}: HTTP {status}: {message}")
        try:
            response = json.loads(data)
        except ValueError as exc:
            raise TranslationError(f"{self.endpoint.url}: unparseable response {data[:200]!r}") from exc
        return extract_translation(response)


class CachingTranslator:
    """Memo, persistent cache and failure accounting shared by the backends.

    ``lookup`` raises ``TranslationError`` when the backend fails and counts
    the failure in ``failures``; ``translate`` never raises and hands back
    its input instead.
    """

    name = ""

    def __init__(self, cache: TranslationCache | None = None) -> None:
        self.persistent_cache = cache
        self.failures = 0
        self._memo: dict[str, str] = {}

    def endpoint_ids(self) -> list[str]:
        raise NotImplementedError

    def _request(self, text: str) -> tuple[str, str]:
        """Translate uncached; return the translation and the endpoint id."""
        raise NotImplementedError

    def request(self, text: str) -> str:
        return self._request(text)[0]

    def lookup(self, text: str) -> str:
        if not text or not text.strip():
            return text
        if text in self._memo:
            return self._memo[text]
        if self.persistent_cache is not None:
            cached = self.persistent_cache.get(self.name, self.endpoint_ids(), text)
            if cached is not None:
                self._memo[text] = cached
                return cached

        started = time.monotonic()
        try:
            translated, endpoint_id = self._request(text)
        except TranslationError:
            self.failures += 1
            raise
        LOGGER.info(
            "Translated via %s: %.2fs, %d chars",
            endpoint_id,
            time.monotonic() - started,
            len(text),
        )
        self._memo[text] = translated
        if self.persistent_cache is not None:
            self.persistent_cache.put(self.name, endpoint_id, text, translated)
        return translated

    def translate(self, text: str) -> str:
        try:
            return self.lookup(text)
        except TranslationError as exc:
            LOGGER.warning("Translation failed, keeping original text: %s", exc)
            return text

    def close(self) -> None:
        if self.persistent_cache is not None:
            self.persistent_cache.close()
            self.persistent_cache = None


class SugoiTranslator(CachingTranslator):
    """Client for a Sugoi-style offline translation server.

    Endpoints are tried in order and the first usable answer wins.
    """

    name = "sugoi"

    def __init__(
        self,
        endpoints: list[Endpoint],
        timeout: float,
        cache: TranslationCache | None = None,
    ) -> None:
        if not endpoints:
            raise ValueError("At least one endpoint is required")
        for endpoint in endpoints:
            if endpoint.request_format not in REQUEST_FORMATS:
                raise ValueError(f"Unknown request format: {endpoint.request_format}")
        super().__init__(cache)
        self.endpoints = list(endpoints)
        self.timeout = timeout
        self.clients = [EndpointClient(endpoint, timeout) for endpoint in self.endpoints]

    def endpoint_ids(self) -> list[str]:
        return [endpoint.url for endpoint in self.endpoints]

    def _request(self, text: str) -> tuple[str, str]:
        errors = []
        for client in self.clients:
            try:
                return client.translate(text), client.endpoint.url
            except TranslationError as exc:
                LOGGER.debug("Endpoint failed: %s", exc)
                errors.append(str(exc))
        raise TranslationError("; ".join(errors))

    def close(self) -> None:
        for client in self.clients:
            client.close()
        super().close()


def extract_generated_text(output) -> str:
    if isinstance(output, list) and output:
        output = output[0]
    if isinstance(output, dict):
        for key in ("translation_text", "generated_text"):
            generated = output.get(key)
            if isinstance(generated, str):
                return generated
    raise TranslationError(f"Unexpected pipeline output: {output!r}")


class PipelineTranslator(CachingTranslator):
    """In-process Japanese to English model via a transformers pipeline."""

    name = "pipeline"

    def __init__(self, model: str, device: str = "cpu", cache: TranslationCache | None = None) -> None:
        super().__init__(cache)
        self.model = model
        self.device = device
        self._pipe = None

    def endpoint_ids(self) -> list[str]:
        return [self.model]

    def _get_pipeline(self):
        if self._pipe is not None:
            return self._pipe
        try:
            import torch
            from transformers import pipeline
        except ImportError as exc:
            LOGGER.error("transformers not installed; run: pip install 'loctranslate[local]'")
            raise TranslationError("transformers and torch are required for the pipeline backend") from exc
        if self.device == "cuda" and not torch.cuda.is_available():
            LOGGER.warning("CUDA not available, falling back to CPU")
            self.device = "cpu"
        LOGGER.info("Loading pipeline from %s", self.model)
        self._pipe = pipeline(
            "translation",
            model=self.model,
            device=0 if self.device == "cuda" else -1,
        )
        return self._pipe

    def _request(self, text: str) -> tuple[str, str]:
        pipe = self._get_pipeline()
        try:
            output = pipe(text)
        except (RuntimeError, ValueError) as exc:
            raise TranslationError(str(exc)) from exc
        return extract_generated_text(output), self.model

    def close(self) -> None:
        self._pipe = None
        super().close()


def check_connection(translator, probe: str = PROBE_TEXT) -> bool:
    try:
        result = translator.request(probe)
    except TranslationError as exc:
        LOGGER.error("Translation backend unreachable: %s", exc)
        return False
    if not result or result == probe:
        LOGGER.error("Backend returned the original text; translation may not be working")
        return False
    LOGGER.info("Connection test successful: %s", result)
    return True


def build_translator(settings: Settings):
    cache = TranslationCache(settings.cache_path) if settings.cache_enabled else None
    if settings.backend == "pipeline":
        return PipelineTranslator(settings.model, settings.device, cache)
    endpoints = [Endpoint(url) for url in settings.urls]
    return SugoiTranslator(endpoints, settings.timeout, cache)
