from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from .sync.policy import RetryPolicy


class SyncSettings(BaseSettings):
    """Environment-based settings (TASK_SYNC_* variables or .env)."""

    model_config = SettingsConfigDict(
        env_prefix="TASK_SYNC_", env_file=".env", case_sensitive=False, extra="ignore"
    )

    database_url: str = "postgresql://root@127.0.0.1:5432/go_task"
    elasticsearch_url: str = "http://127.0.0.1:9200"
    index_name: str = "task-idx"
    index_timeout_sec: float = 10.0

    channel_capacity: int = 200
    overflow_strategy: Literal["block", "drop_oldest", "error"] = "block"

    max_retries: int = 3
    retry_delay_sec: float = 2.0
    backoff: Literal["fixed", "exponential"] = "fixed"
    max_retry_delay_sec: float = 30.0
    retry_jitter: bool = False

    replay_interval_sec: float = 30.0
    replay_batch_size: int = 100
    poison_policy: Literal["retain", "delete"] = "retain"

    dead_letter_backend: Literal["postgres", "file"] = "postgres"
    dead_letter_path: str = ".dlq/dead_letter_tasks.ndjson"
    pool_max: int = 10

    metrics_port: int = 0
    log_level: str = "INFO"
    alembic_ini: str = "alembic.ini"

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            delay_sec=self.retry_delay_sec,
            backoff=self.backoff,
            max_delay_sec=self.max_retry_delay_sec,
            jitter=self.retry_jitter,
        )


@lru_cache()
def get_settings() -> SyncSettings:
    return SyncSettings()
