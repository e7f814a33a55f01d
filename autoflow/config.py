from __future__ import annotations

import os
from typing import Dict, Literal, Optional

import yaml
from pydantic import BaseModel, Field

from .constants import ACTION_QUEUE, AI_QUEUE, DOCUMENT_QUEUE


class RedisConfig(BaseModel):
    """Configuration for Redis transport."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None


class TransportConfig(BaseModel):
    """Transport configuration settings."""

    backend: Literal["inmemory", "redis"] = "inmemory"
    redis: RedisConfig = RedisConfig()


class RetentionConfig(BaseModel):
    """How many finished jobs to keep, and for how long (seconds)."""

    count: int
    age: int


class QueueOptions(BaseModel):
    """Per-queue worker and job defaults."""

    concurrency: int = 1
    attempts: int = 3
    backoff_delay: float = 1.0
    rate_limit_max: Optional[int] = None
    rate_limit_duration: float = 1.0
    remove_on_complete: RetentionConfig = RetentionConfig(count=100, age=24 * 60 * 60)
    remove_on_fail: RetentionConfig = RetentionConfig(count=1000, age=7 * 24 * 60 * 60)


def default_queue_options() -> Dict[str, QueueOptions]:
    return {
        DOCUMENT_QUEUE: QueueOptions(concurrency=3, attempts=3),
        AI_QUEUE: QueueOptions(
            concurrency=5,
            attempts=3,
            backoff_delay=2.0,
            rate_limit_max=10,
            rate_limit_duration=1.0,
        ),
        ACTION_QUEUE: QueueOptions(concurrency=10, attempts=5),
    }


class ProviderKeys(BaseModel):
    """API keys for AI providers; a provider is enabled when its key is set."""

    openai: Optional[str] = None
    gemini: Optional[str] = None
    groq: Optional[str] = None


class EmailConfig(BaseModel):
    """SMTP settings for the email action."""

    host: str = "smtp.gmail.com"
    port: int = 587
    secure: bool = False
    user: Optional[str] = None
    password: Optional[str] = None
    sender: Optional[str] = None

    @property
    def configured(self) -> bool:
        return bool(self.user and self.password)


class AutoflowConfig(BaseModel):
    """Top-level configuration model."""

    transport: TransportConfig = TransportConfig()
    database_url: Optional[str] = None
    queues: Dict[str, QueueOptions] = Field(default_factory=default_queue_options)
    ai: ProviderKeys = ProviderKeys()
    email: EmailConfig = EmailConfig()
    upload_dir: str = "uploads"
    log_level: str = "INFO"


def _apply_env(config: AutoflowConfig) -> AutoflowConfig:
    env_db_url = os.getenv("AUTOFLOW_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url

    for provider in ("openai", "gemini", "groq"):
        key = os.getenv(f"{provider.upper()}_API_KEY")
        if key:
            setattr(config.ai, provider, key)

    if os.getenv("SMTP_HOST"):
        config.email.host = os.environ["SMTP_HOST"]
    if os.getenv("SMTP_PORT"):
        config.email.port = int(os.environ["SMTP_PORT"])
    if os.getenv("SMTP_SECURE"):
        config.email.secure = os.environ["SMTP_SECURE"].lower() == "true"
    if os.getenv("SMTP_USER"):
        config.email.user = os.environ["SMTP_USER"]
    if os.getenv("SMTP_PASS"):
        config.email.password = os.environ["SMTP_PASS"]
    config.email.sender = os.getenv("EMAIL_FROM") or config.email.sender or config.email.user

    if os.getenv("AUTOFLOW_UPLOAD_DIR"):
        config.upload_dir = os.environ["AUTOFLOW_UPLOAD_DIR"]
    if os.getenv("LOG_LEVEL"):
        config.log_level = os.environ["LOG_LEVEL"]
    return config


def load_config(path: Optional[str] = None) -> AutoflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to AUTOFLOW_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("AUTOFLOW_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        queues = default_queue_options()
        for name, overrides in (data.pop("queues", None) or {}).items():
            base = queues.get(name, QueueOptions())
            queues[name] = QueueOptions(**{**base.model_dump(), **overrides})
        config = AutoflowConfig(**data, queues=queues)
    else:
        config = AutoflowConfig()

    return _apply_env(config)
