from __future__ import annotations

OPENROUTER_API_URL = "https://openrouter.ai/api/v1/chat/completions"

MODEL_ID = "x-ai/grok-4-fast:free"

SYSTEM_PROMPT = "You are a helpful assistant."

# Seconds, applied to every phase of the upstream call.
UPSTREAM_TIMEOUT = 30.0
