"""
Loads and handles config from config.yml
Overrides (LLM_ENABLED, OLLAMA_BASE_URL, DATABASE_PATH) may come from .env
"""
import os
from typing import Any, Dict, List, Literal, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel

BiasLabel = Literal["left", "center-left", "center", "center-right", "right", "international"]


class SourceConfig(BaseModel):
    """Configuration for a single feed source."""
    name: str
    feed_url: str
    bias_label: Optional[BiasLabel] = None  # Resolved from the outlet name when missing
    active: bool = True


class ClusteringConfig(BaseModel):
    similarity_threshold: float = 0.35
    window_hours: int = 72
    candidate_limit: int = 500
    min_tokens: int = 3


class EnrichmentConfig(BaseModel):
    min_articles: int = 3
    batch_size: int = 10
    article_limit: int = 10


class DigestConfig(BaseModel):
    cluster_limit: int = 10
    window_hours: int = 24


class Config(BaseModel):
    # Core
    DATABASE_PATH: str = "data/storyline.db"

    # Ollama
    LLM_ENABLED: bool = False
    OLLAMA_BASE_URL: str = "http://localhost:11434"
    OLLAMA_MODEL: str = "llama3.1:8b"

    # Ingestion
    FETCH_CONCURRENCY: int = 4
    FETCH_TIMEOUT: float = 15.0

    # Schedule
    SYNC_INTERVAL_MINUTES: int = 30
    DIGEST_HOUR: int = 6

    clustering: ClusteringConfig = ClusteringConfig()
    enrichment: EnrichmentConfig = EnrichmentConfig()
    digest: DigestConfig = DigestConfig()

    sources: List[SourceConfig] = []


def _bool(value: str | bool) -> bool:
    """Convert string or bool to boolean."""
    if isinstance(value, bool):
        return value
    return str(value).lower() in ("1", "true", "yes", "on")


def _get_config_path() -> str:
    """Get the path to config.yml, handling different working directories."""
    env_path = os.getenv("STORYLINE_CONFIG")
    if env_path:
        if os.path.exists(env_path):
            return env_path
        raise FileNotFoundError(f"STORYLINE_CONFIG points to a missing file: {env_path}")

    if os.path.exists('resources/config.yml'):
        return 'resources/config.yml'

    # <root>/src/storyline/services/config.py
    project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))
    config_path = os.path.join(project_root, 'resources', 'config.yml')
    if os.path.exists(config_path):
        return config_path

    raise FileNotFoundError("Cannot find resources/config.yml")


def parse_config(data: Dict[str, Any]) -> Config:
    """Build a Config from parsed YAML, applying environment overrides."""
    data = dict(data or {})

    llm_enabled = os.getenv("LLM_ENABLED", data.get("LLM_ENABLED", False))
    data["LLM_ENABLED"] = _bool(llm_enabled)

    for key in ("OLLAMA_BASE_URL", "OLLAMA_MODEL", "DATABASE_PATH"):
        if os.getenv(key):
            data[key] = os.getenv(key)

    return Config.model_validate(data)


def load_config(path: Optional[str] = None) -> Config:
    """Load configuration from config.yml and overrides from .env."""
    load_dotenv()

    config_path = path or _get_config_path()

    with open(config_path, 'r') as file:
        config = yaml.safe_load(file) or {}

    return parse_config(config)

