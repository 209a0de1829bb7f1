from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from common.exceptions import ConfigurationError

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "config.yaml"


class AppConfig(BaseModel):
    data_dir: Path = Path("data/docs")
    persist_dir: Path = Path("data/chroma")
    cache_dir: Path = Path("data/cache")
    collection: str = Field(default="documents", min_length=1)

    max_pdf_pages: int | None = None
    allowed_exts: tuple[str, ...] = (".pdf", ".txt", ".md")
    log_level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")


class VectorStoreConfig(BaseModel):
    embedding_provider: str = Field(default="ollama", pattern="^(ollama|huggingface)$")
    embedding_model: str = "paraphrase-multilingual"
    # Remote Chroma server; a local persistent store is used when unset.
    chroma_host: str | None = None
    chroma_port: int = 8000
    reindex_policy: str = Field(default="upsert", pattern="^(upsert|replace_document)$")
    upsert_attempts: int = Field(default=1, ge=1)


class ChunkingConfig(BaseModel):
    mode: str = Field(default="token", pattern="^(token|sentence)$")
    max_tokens: int = Field(default=512, gt=0)
    encoding: str = "cl100k_base"


class ExpansionConfig(BaseModel):
    neighbors: int = Field(default=2, ge=0)
    pacing: str = Field(default="fixed", pattern="^(fixed|token_bucket|none)$")
    delay_seconds: float = Field(default=0.0, ge=0)
    requests_per_minute: int | None = Field(default=None, gt=0)
    pace_after_last: bool = False
    show_progress: bool = True


class RetrievalConfig(BaseModel):
    k: int = Field(default=5, gt=0)
    score_threshold: float = Field(default=0.55, ge=0.0, le=1.0)
    degrade_on_error: bool = False


class ChatConfig(BaseModel):
    rephrase: bool = True
    stream_buffer: int = Field(default=10, gt=0)
    max_history_turns: int | None = Field(default=None, gt=0)


class LLMConfig(BaseModel):
    provider: str = "ollama"
    model_name: str = Field(default="gemma3:12b", min_length=1)
    temperature: float = Field(default=0.2, ge=0.0)
    timeout: float = Field(default=120.0, gt=0)


class ServerConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = 3003


class GlobalYAMLConfig(BaseModel):
    app: AppConfig = AppConfig()
    vectorstore: VectorStoreConfig = VectorStoreConfig()
    chunking: ChunkingConfig = ChunkingConfig()
    expansion: ExpansionConfig = ExpansionConfig()
    retrieval: RetrievalConfig = RetrievalConfig()
    chat: ChatConfig = ChatConfig()
    llm_qa: LLMConfig = LLMConfig()
    llm_expansion: LLMConfig = LLMConfig()
    server: ServerConfig = ServerConfig()


def load_yaml_config(path: Path | None = None) -> GlobalYAMLConfig:
    """
    Load and validate the YAML configuration.

    Fails fast with ConfigurationError so that bad thresholds, sizes or model
    parameters are reported at startup rather than on the first request.
    """
    path = Path(path or os.environ.get("DOCCHAT_CONFIG") or DEFAULT_CONFIG_PATH)
    if not path.exists():
        raise ConfigurationError(
            f"Config file not found: {path}", context={"path": str(path)}
        )
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        return GlobalYAMLConfig(**raw)
    except (yaml.YAMLError, ValidationError, TypeError) as e:
        raise ConfigurationError(
            f"Invalid configuration in {path}", cause=e, context={"path": str(path)}
        ) from e


class Endpoints(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ollama_base_url: str = "http://localhost:11434"
    chroma_host: str | None = None
    chroma_port: int | None = None


yaml_config = load_yaml_config()
endpoints = Endpoints()
