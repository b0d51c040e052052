"""enigma: a small command-line client for the Perplexity chat API."""

__version__ = "1.0.0"

from .api_client import ChatClient, ask, ask_streaming
from .config import EnigmaConfig, load_config
from .errors import EnigmaError, classify
from .payload import AskOptions, build_payload

__all__ = [
    "AskOptions",
    "ChatClient",
    "EnigmaConfig",
    "EnigmaError",
    "ask",
    "ask_streaming",
    "build_payload",
    "classify",
    "load_config",
]
