"""
Request body construction for /chat/completions.

Only `model` and `search_mode` can be overridden per call; sampling
parameters always come from the `agent` section of the config.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .config import SEARCH_MODES, EnigmaConfig, validate_model_name

log = logging.getLogger("enigma.payload")


@dataclass(frozen=True, slots=True)
class AskOptions:
    """Per-call overrides coming from the command line."""

    model: str | None = None
    search_mode: str | None = None
    stream: bool | None = None

    @classmethod
    def from_cli(
        cls,
        model: str | None = None,
        search_mode: str | None = None,
        stream: bool | None = None,
    ) -> AskOptions:
        """Drop values that can't be used, with a warning instead of an error."""
        if model is not None and not model.strip():
            model = None
        if search_mode is not None and search_mode not in SEARCH_MODES:
            log.warning(
                'Ignoring search mode "%s" (expected one of: %s).',
                search_mode, ", ".join(SEARCH_MODES),
            )
            search_mode = None
        return cls(model=model, search_mode=search_mode, stream=stream)


@dataclass(frozen=True, slots=True)
class RequestPayload:
    model: str
    messages: tuple[dict, ...]
    stream: bool
    search_mode: str
    temperature: float
    max_tokens: int
    top_p: float

    def to_dict(self) -> dict:
        return {
            "model": self.model,
            "messages": [dict(m) for m in self.messages],
            "stream": self.stream,
            "search_mode": self.search_mode,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "top_p": self.top_p,
        }


def build_payload(
    question: str,
    config: EnigmaConfig,
    options: AskOptions | None = None,
    *,
    streaming: bool = False,
) -> RequestPayload:
    options = options or AskOptions()
    model, _ = validate_model_name(options.model, config)
    return RequestPayload(
        model=model,
        messages=({"role": "user", "content": question},),
        stream=streaming,
        search_mode=options.search_mode or config.research.search_mode,
        temperature=config.agent.temperature,
        max_tokens=config.agent.max_tokens,
        top_p=config.agent.top_p,
    )
