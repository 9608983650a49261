from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Process-level settings loaded from environment / .env file.

    Per-project checks live in the YAML file (see ``projects.config``);
    these only tune the runtime around them.
    """

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "WATCH_NOW_",
        "extra": "ignore",
    }

    # Project file used when --config isn't given
    config_path: str = ".watch-now.yaml"

    # API
    api_host: str = "127.0.0.1"

    # Terminal display
    display_interval: float = 5.0  # seconds between redraws
    first_round_timeout: float = 10.0  # wait for all checks before first draw
    once_timeout: float = 60.0  # --once: serialized linters can take a while

    # Push stream
    sse_heartbeat: float = 5.0
    subscriber_queue_size: int = 10

    # 0 = one worker per check per tick (no cap)
    max_workers: int = 0

    # Logging
    log_level: str = "INFO"


settings = Settings()
