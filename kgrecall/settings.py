"""Connection and runtime settings read from the environment."""

from dataclasses import dataclass
import os
from pathlib import Path

from .errors import ConfigurationError
from .retry import RetryPolicy

DEFAULT_NEO4J_URI = "bolt://localhost:7687"
DEFAULT_NEO4J_USER = "neo4j"
DEFAULT_CHUNK_DB = "data/chunks.db"
# Options:
# - BAAI/bge-base-en-v1.5: Good quality, 440MB, works on 4GB VRAM
# - sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2: Multilingual, 470MB
DEFAULT_MODEL = "sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2"


@dataclass(frozen=True)
class Settings:
    neo4j_uri: str
    neo4j_user: str
    neo4j_password: str
    chunk_db: Path
    embedding_model: str = DEFAULT_MODEL
    retry: RetryPolicy = RetryPolicy()

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "Settings":
        """Build settings from ``environ`` (defaults to ``os.environ``).

        Raises:
            ConfigurationError: missing password or malformed numeric values.
        """
        env = os.environ if environ is None else environ

        password = env.get("NEO4J_PASSWORD", "").strip()
        if not password:
            raise ConfigurationError("NEO4J_PASSWORD is not set")

        try:
            retry = RetryPolicy(
                attempts=int(env.get("KGRECALL_EMBED_RETRIES", RetryPolicy.attempts)),
                base_delay=float(env.get("KGRECALL_RETRY_DELAY", RetryPolicy.base_delay)),
            )
        except ValueError as exc:
            raise ConfigurationError(f"Invalid retry setting: {exc}") from exc
        if retry.attempts < 1 or retry.base_delay < 0:
            raise ConfigurationError("Retry attempts must be >= 1 and delay >= 0")

        return cls(
            neo4j_uri=env.get("NEO4J_URI", DEFAULT_NEO4J_URI),
            neo4j_user=env.get("NEO4J_USER", DEFAULT_NEO4J_USER),
            neo4j_password=password,
            chunk_db=Path(env.get("KGRECALL_CHUNK_DB", DEFAULT_CHUNK_DB)),
            embedding_model=env.get("KGRECALL_EMBEDDING_MODEL", DEFAULT_MODEL),
            retry=retry,
        )
