"""Shared constants for autoflow."""

from __future__ import annotations

from datetime import timedelta

DOCUMENT_QUEUE = "document-processing"
AI_QUEUE = "ai-processing"
ACTION_QUEUE = "action-execution"

QUEUE_NAMES = (DOCUMENT_QUEUE, AI_QUEUE, ACTION_QUEUE)

LOG_RETENTION = timedelta(days=30)
MAX_LOGS_PER_RUN = 1000

DEFAULT_FILE_TYPE = "application/pdf"

DEFAULT_AI_SCHEMA = {
    "type": "object",
    "properties": {"result": {"type": "string"}},
}

DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "gemini": "gemini-1.5-flash",
    "groq": "llama-3.3-70b-versatile",
}

# Provider preference when no provider is named on a step.
PROVIDER_PREFERENCE = ("groq", "gemini", "openai")
