"""Library settings loaded from environment variables via pydantic-settings.

Field names map to ``DOCWEAVE_``-prefixed environment variables, e.g.
``default_chunk_size`` <- ``DOCWEAVE_DEFAULT_CHUNK_SIZE``.  Values in a
``.env`` file in the working directory are read as well; real environment
variables win over ``.env`` entries, and both win over the defaults below.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """docweave settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(
        env_prefix="DOCWEAVE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Application ===
    app_env: str = "development"
    log_level: str = "INFO"

    # === Chunking ===
    default_chunk_size: int = 1000
    default_chunk_overlap: int = 200
    min_chunk_size: int = 100
    # HuggingFace tokenizer for token-count chunking; empty = len // 4 estimate.
    tokenizer_name: str = ""

    # === Retry / timeout ===
    retry_base_delay: float = 1.0
    retry_max_delay: float = 30.0
    retry_jitter: float = 0.1
    transform_timeout: float = 0.0  # seconds; 0 disables

    # === Pipeline engine ===
    history_size: int = 100
    run_state_ttl: int = 3600  # seconds terminal run states stay queryable
    run_state_max: int = 1000
    pipelines_path: str = "config/pipelines.yaml"

    # === Batched operations ===
    batch_size: int = 10
    batch_delay: float = 0.5
