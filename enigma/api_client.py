"""
HTTP client for the Perplexity-style /chat/completions API.

Supports both streaming and non-streaming responses.
Uses raw `requests`, no SDK dependencies.

Failures from `requests` are converted into enigma.errors types here and
raised; turning them into user-facing text is the caller's job.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable

import requests

from .config import EnigmaConfig, resolve_api_key
from .errors import MissingKeyError, from_requests_error
from .payload import AskOptions, build_payload
from .sse import SSEDecoder

log = logging.getLogger("enigma.api_client")

CHAT_PATH = "/chat/completions"


def extract_answer(body: Any) -> str:
    """choices[0].message.content, or the whole body as pretty JSON."""
    try:
        content = body["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        content = None
    if isinstance(content, str):
        return content.strip()
    return json.dumps(body, indent=2, ensure_ascii=False)


class ChatClient:
    """Thin wrapper around {base_url}/chat/completions."""

    def __init__(
        self,
        config: EnigmaConfig,
        session: requests.Session | None = None,
    ) -> None:
        self._config = config
        self._endpoint = config.api.base_url.rstrip("/") + CHAT_PATH
        # 0 or less means no timeout
        self._timeout = config.api.timeout / 1000 if config.api.timeout > 0 else None
        self._owns_session = session is None
        self._session = session or requests.Session()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def ask(self, question: str, options: AskOptions | None = None) -> str:
        """Blocking request; returns the answer text."""
        headers = self._headers(streaming=False)
        payload = build_payload(question, self._config, options, streaming=False)
        log.debug("POST %s model=%s stream=false", self._endpoint, payload.model)

        try:
            resp = self._session.post(
                self._endpoint,
                json=payload.to_dict(),
                headers=headers,
                timeout=self._timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise from_requests_error(exc) from exc

        try:
            body = resp.json()
        except ValueError:
            return resp.text.strip()
        return extract_answer(body)

    def ask_streaming(
        self,
        question: str,
        options: AskOptions | None,
        on_fragment: Callable[[str], None],
    ) -> None:
        """Stream SSE fragments to `on_fragment` as they arrive."""
        headers = self._headers(streaming=True)
        payload = build_payload(question, self._config, options, streaming=True)
        log.debug("POST %s model=%s stream=true", self._endpoint, payload.model)

        try:
            resp = self._session.post(
                self._endpoint,
                json=payload.to_dict(),
                headers=headers,
                stream=True,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise from_requests_error(exc) from exc
        try:
            resp.raise_for_status()
        except requests.HTTPError as exc:
            resp.close()
            raise from_requests_error(exc) from exc

        decoder = SSEDecoder()
        try:
            for chunk in resp.iter_content(chunk_size=None):
                for fragment in decoder.feed(chunk):
                    on_fragment(fragment)
                if decoder.done:
                    log.debug("Received [DONE]")
                    return
        except requests.RequestException as exc:
            raise decoder.fail(exc) from exc
        finally:
            resp.close()

        tail = decoder.finish()
        if tail is not None:
            on_fragment(tail)

    def close(self) -> None:
        if self._owns_session:
            self._session.close()

    def __enter__(self) -> ChatClient:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _headers(self, *, streaming: bool) -> dict[str, str]:
        api_key = resolve_api_key(self._config)
        if not api_key:
            raise MissingKeyError()
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        if streaming:
            headers["Accept"] = "text/event-stream"
        return headers


def ask(
    question: str,
    config: EnigmaConfig,
    options: AskOptions | None = None,
    *,
    session: requests.Session | None = None,
) -> str:
    with ChatClient(config, session=session) as client:
        return client.ask(question, options)


def ask_streaming(
    question: str,
    config: EnigmaConfig,
    options: AskOptions | None,
    on_fragment: Callable[[str], None],
    *,
    session: requests.Session | None = None,
) -> None:
    with ChatClient(config, session=session) as client:
        client.ask_streaming(question, options, on_fragment)
