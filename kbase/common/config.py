"""
Configuration Management for kbase

Loads configuration from ~/.kbase/config.json and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field

logger = logging.getLogger("kbase.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".kbase"
CONFIG_PATH = CONFIG_DIR / "config.json"
KEYS_DIR = CONFIG_DIR / "keys"


@dataclass
class LLMConfig:
    """LLM provider configuration shared by expansion and answer generation"""
    provider: str = "openai"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    google_api_key: str = ""
    google_model: str = "gemini-2.0-flash-exp"
    temperature: float = 0.1
    max_tokens: int = 1000
    timeout: float = 30.0

    @property
    def model(self) -> str:
        """Model name for the selected provider"""
        return {
            "anthropic": self.anthropic_model,
            "openai": self.openai_model,
            "google": self.google_model,
        }.get(self.provider, "")


@dataclass
class EmbeddingConfig:
    """Embedding model configuration"""
    model: str = "sentence-transformers/all-MiniLM-L6-v2"


@dataclass
class VectorStoreConfig:
    """Vector store backend configuration"""
    backend: str = "memory"  # "memory" or "envector"
    endpoint: str = "localhost:50050"
    api_key: str = ""
    index_name: str = "knowledge_base"
    key_path: str = str(KEYS_DIR)


@dataclass
class RetrieverConfig:
    """Query pipeline configuration"""
    expansion_count: int = 3
    per_query_limit: int = 3
    max_context_chars: int = 12000
    source_preview_chars: int = 200


@dataclass
class ServerConfig:
    """HTTP server configuration"""
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"


@dataclass
class KBaseConfig:
    """Main kbase configuration"""
    llm: LLMConfig = field(default_factory=LLMConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    vector_store: VectorStoreConfig = field(default_factory=VectorStoreConfig)
    retriever: RetrieverConfig = field(default_factory=RetrieverConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    _env_sourced_keys: set = field(default_factory=set, repr=False)


def _parse_llm_config(data: dict) -> LLMConfig:
    """Parse llm section from config dict"""
    llm_data = data.get("llm", {})
    defaults = LLMConfig()
    return LLMConfig(
        provider=llm_data.get("provider", defaults.provider),
        anthropic_api_key=llm_data.get("anthropic_api_key", ""),
        anthropic_model=llm_data.get("anthropic_model", defaults.anthropic_model),
        openai_api_key=llm_data.get("openai_api_key", ""),
        openai_model=llm_data.get("openai_model", defaults.openai_model),
        google_api_key=llm_data.get("google_api_key", ""),
        google_model=llm_data.get("google_model", defaults.google_model),
        temperature=float(llm_data.get("temperature", defaults.temperature)),
        max_tokens=int(llm_data.get("max_tokens", defaults.max_tokens)),
        timeout=float(llm_data.get("timeout", defaults.timeout)),
    )


def _parse_embedding_config(data: dict) -> EmbeddingConfig:
    """Parse embedding section from config dict"""
    embedding_data = data.get("embedding", {})
    return EmbeddingConfig(
        model=embedding_data.get("model", EmbeddingConfig.model),
    )


def _parse_vector_store_config(data: dict) -> VectorStoreConfig:
    """Parse vector_store section from config dict"""
    store_data = data.get("vector_store", {})
    defaults = VectorStoreConfig()
    return VectorStoreConfig(
        backend=store_data.get("backend", defaults.backend),
        endpoint=store_data.get("endpoint", defaults.endpoint),
        api_key=store_data.get("api_key", ""),
        index_name=store_data.get("index_name", defaults.index_name),
        key_path=store_data.get("key_path", defaults.key_path),
    )


def _parse_retriever_config(data: dict) -> RetrieverConfig:
    """Parse retriever section from config dict"""
    retriever_data = data.get("retriever", {})
    defaults = RetrieverConfig()
    return RetrieverConfig(
        expansion_count=int(retriever_data.get("expansion_count", defaults.expansion_count)),
        per_query_limit=int(retriever_data.get("per_query_limit", defaults.per_query_limit)),
        max_context_chars=int(retriever_data.get("max_context_chars", defaults.max_context_chars)),
        source_preview_chars=int(retriever_data.get("source_preview_chars", defaults.source_preview_chars)),
    )


def _parse_server_config(data: dict) -> ServerConfig:
    """Parse server section from config dict"""
    server_data = data.get("server", {})
    defaults = ServerConfig()
    return ServerConfig(
        host=server_data.get("host", defaults.host),
        port=int(server_data.get("port", defaults.port)),
        log_level=server_data.get("log_level", defaults.log_level),
    )


def load_config() -> KBaseConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file (~/.kbase/config.json)
    3. Default values
    """
    config = KBaseConfig()

    # Load from config file if exists
    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.llm = _parse_llm_config(data)
            config.embedding = _parse_embedding_config(data)
            config.vector_store = _parse_vector_store_config(data)
            config.retriever = _parse_retriever_config(data)
            config.server = _parse_server_config(data)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Failed to load config file: %s", e)

    # LLM env var overrides (track env-sourced keys)
    _env_llm_map = {
        "ANTHROPIC_API_KEY": "anthropic_api_key",
        "ANTHROPIC_MODEL": "anthropic_model",
        "OPENAI_API_KEY": "openai_api_key",
        "OPENAI_MODEL": "openai_model",
        "GOOGLE_API_KEY": "google_api_key",
        "GEMINI_API_KEY": "google_api_key",
        "GOOGLE_MODEL": "google_model",
        "KBASE_LLM_PROVIDER": "provider",
    }
    for env_var, attr in _env_llm_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(config.llm, attr, val)
            config._env_sourced_keys.add(attr)

    if os.getenv("EMBEDDING_MODEL"):
        config.embedding.model = os.getenv("EMBEDDING_MODEL")

    if os.getenv("KBASE_VECTOR_BACKEND"):
        config.vector_store.backend = os.getenv("KBASE_VECTOR_BACKEND")
    if os.getenv("ENVECTOR_ENDPOINT"):
        config.vector_store.endpoint = os.getenv("ENVECTOR_ENDPOINT")
    if os.getenv("ENVECTOR_API_KEY"):
        config.vector_store.api_key = os.getenv("ENVECTOR_API_KEY")
        config._env_sourced_keys.add("vector_store.api_key")
    if os.getenv("KBASE_INDEX_NAME"):
        config.vector_store.index_name = os.getenv("KBASE_INDEX_NAME")

    if os.getenv("KBASE_EXPANSION_COUNT"):
        config.retriever.expansion_count = int(os.getenv("KBASE_EXPANSION_COUNT"))
    if os.getenv("KBASE_PER_QUERY_LIMIT"):
        config.retriever.per_query_limit = int(os.getenv("KBASE_PER_QUERY_LIMIT"))
    if os.getenv("KBASE_MAX_CONTEXT_CHARS"):
        config.retriever.max_context_chars = int(os.getenv("KBASE_MAX_CONTEXT_CHARS"))

    if os.getenv("PORT"):
        config.server.port = int(os.getenv("PORT"))
    if os.getenv("LOG_LEVEL"):
        config.server.log_level = os.getenv("LOG_LEVEL")

    return config


def save_config(config: KBaseConfig) -> None:
    """Save configuration to file.

    API key fields that were sourced from environment variables are written
    as empty strings so that secrets are not persisted to disk.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    env_sourced = getattr(config, "_env_sourced_keys", set())

    llm_section = {
        "provider": config.llm.provider,
        "anthropic_api_key": config.llm.anthropic_api_key,
        "anthropic_model": config.llm.anthropic_model,
        "openai_api_key": config.llm.openai_api_key,
        "openai_model": config.llm.openai_model,
        "google_api_key": config.llm.google_api_key,
        "google_model": config.llm.google_model,
        "temperature": config.llm.temperature,
        "max_tokens": config.llm.max_tokens,
        "timeout": config.llm.timeout,
    }
    for key in ("anthropic_api_key", "openai_api_key", "google_api_key"):
        if key in env_sourced:
            llm_section[key] = ""

    data = {
        "llm": llm_section,
        "embedding": {
            "model": config.embedding.model,
        },
        "vector_store": {
            "backend": config.vector_store.backend,
            "endpoint": config.vector_store.endpoint,
            "api_key": "" if "vector_store.api_key" in env_sourced else config.vector_store.api_key,
            "index_name": config.vector_store.index_name,
            "key_path": config.vector_store.key_path,
        },
        "retriever": {
            "expansion_count": config.retriever.expansion_count,
            "per_query_limit": config.retriever.per_query_limit,
            "max_context_chars": config.retriever.max_context_chars,
            "source_preview_chars": config.retriever.source_preview_chars,
        },
        "server": {
            "host": config.server.host,
            "port": config.server.port,
            "log_level": config.server.log_level,
        },
    }

    with open(CONFIG_PATH, "w") as f:
        json.dump(data, f, indent=2)

    # Set secure permissions
    CONFIG_PATH.chmod(0o600)


def ensure_directories() -> None:
    """Ensure required directories exist"""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    KEYS_DIR.mkdir(parents=True, exist_ok=True)
