# codepack/core/token_counter.py
import math
import os
from functools import lru_cache
from typing import Any, Iterable, Optional

import tiktoken
from loguru import logger

from .errors import EmptySelectionError
from .models import TokenEstimate

DEFAULT_ENCODING = "cl100k_base"
FALLBACK_ENCODING = "gpt2"

BYTES_PER_TOKEN = 4

# Context size warnings surfaced next to the estimate
LARGE_CONTEXT_TOKENS = 32_000
MAX_CONTEXT_TOKENS = 128_000


# --- Byte heuristic ---

def estimate_from_bytes(total_bytes: int) -> int:
    """Tokens for a byte count: 0 for 0 bytes, monotonic and deterministic otherwise."""
    if total_bytes <= 0:
        return 0
    return math.ceil(total_bytes / BYTES_PER_TOKEN)


def estimate_tokens(paths: Iterable[str]) -> TokenEstimate:
    """Sums on-disk sizes of the given files. Unreadable paths count as 0 bytes."""
    paths = list(paths)
    if not paths:
        raise EmptySelectionError("estimate tokens")
    total_bytes = 0
    for path in dict.fromkeys(paths):
        try:
            if os.path.isfile(path):
                total_bytes += os.path.getsize(path)
        except OSError as e:
            logger.warning(f"Could not stat {path} for token estimate: {e}")
    result = TokenEstimate(tokens=estimate_from_bytes(total_bytes), total_bytes=total_bytes)
    logger.debug(f"Estimated {result.tokens} tokens for {len(paths)} path(s) ({total_bytes} bytes)")
    return result


def format_tokens(tokens: float) -> str:
    """500 -> '500', 1500 -> '1.5K', 1_500_000 -> '1.5M'."""
    if tokens >= 1_000_000:
        return f"{tokens / 1_000_000:.1f}M"
    if tokens >= 1_000:
        return f"{tokens / 1_000:.1f}K"
    return str(int(tokens))


def context_warning(tokens: int) -> Optional[str]:
    if tokens > MAX_CONTEXT_TOKENS:
        return "exceeds most AI context limits"
    if tokens > LARGE_CONTEXT_TOKENS:
        return "large context"
    return None


# --- Exact counting (content based) ---

@lru_cache(maxsize=4) # Cache a few loaded encoder objects
def _get_cached_encoder(encoding_name: str) -> Optional[Any]:
    """Internal helper to load and cache encoder objects."""
    try:
        logger.debug(f"Attempting to load tiktoken encoder: {encoding_name}")
        return tiktoken.get_encoding(encoding_name)
    except Exception as e:
        # Encoders are downloaded on first use; offline machines end up here
        logger.warning(f"Failed to get tiktoken encoder '{encoding_name}': {e}")
        if encoding_name == FALLBACK_ENCODING:
            return None
        return _get_cached_encoder(FALLBACK_ENCODING)


def count_tokens(text: str, encoding_name: str = DEFAULT_ENCODING) -> int:
    """
    Counts tokens in a string using tiktoken.
    Falls back to the character heuristic if no encoder can be loaded.
    """
    if not text:
        return 0
    encoder = _get_cached_encoder(encoding_name)
    if encoder:
        try:
            return len(encoder.encode(text, disallowed_special=()))
        except Exception as e:
            logger.error(f"Error encoding text for token count with '{encoding_name}': {e}")
    return len(text) // BYTES_PER_TOKEN
