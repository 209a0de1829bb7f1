from __future__ import annotations

from langchain_core.embeddings import Embeddings
from langchain_core.language_models import BaseChatModel

from common.config import endpoints, yaml_config
from common.exceptions import ConfigurationError
from common.logger import get_logger

log = get_logger(__name__)


def load_local_llm(config_section="llm_qa") -> BaseChatModel:
    """
    Load a chat model based on config section (llm_qa or llm_expansion).
    Every request is bounded by the section's timeout.
    """
    cfg = getattr(yaml_config, config_section)

    if cfg.provider == "ollama":
        from langchain_ollama import ChatOllama

        log.info("Using Ollama model %s at %s", cfg.model_name, endpoints.ollama_base_url)
        return ChatOllama(
            model=cfg.model_name,
            temperature=cfg.temperature,
            base_url=endpoints.ollama_base_url,
            client_kwargs={"timeout": cfg.timeout},
        )
    else:
        raise ConfigurationError(f"Unsupported provider: {cfg.provider}")


def load_embeddings() -> Embeddings:
    cfg = yaml_config.vectorstore

    if cfg.embedding_provider == "ollama":
        from langchain_ollama import OllamaEmbeddings

        return OllamaEmbeddings(
            model=cfg.embedding_model,
            base_url=endpoints.ollama_base_url,
            client_kwargs={"timeout": yaml_config.llm_qa.timeout},
        )
    if cfg.embedding_provider == "huggingface":
        from langchain_huggingface import HuggingFaceEmbeddings

        return HuggingFaceEmbeddings(model_name=cfg.embedding_model)
    raise ConfigurationError(f"Unsupported embedding provider: {cfg.embedding_provider}")
