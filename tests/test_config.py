import pytest

from common.config import GlobalYAMLConfig, load_yaml_config
from common.exceptions import ConfigurationError, ExpansionError, StoreError


def _write(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_bundled_config_loads():
    cfg = load_yaml_config()
    assert isinstance(cfg, GlobalYAMLConfig)
    assert 0.0 <= cfg.retrieval.score_threshold <= 1.0
    assert cfg.chunking.max_tokens > 0


def test_missing_sections_use_defaults(tmp_path):
    cfg = load_yaml_config(_write(tmp_path, "retrieval:\n  k: 3\n"))
    assert cfg.retrieval.k == 3
    assert cfg.retrieval.score_threshold == 0.55
    assert cfg.chunking.max_tokens == 512
    assert cfg.server.port == 3003


def test_config_path_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("DOCCHAT_CONFIG", str(_write(tmp_path, "app:\n  collection: handbook\n")))
    assert load_yaml_config().app.collection == "handbook"


@pytest.mark.parametrize(
    "text",
    [
        "retrieval:\n  score_threshold: 1.5\n",
        "chunking:\n  max_tokens: 0\n",
        "chunking:\n  mode: paragraphs\n",
        "vectorstore:\n  upsert_attempts: 0\n",
        "retrieval: [unbalanced\n",
    ],
)
def test_invalid_config_fails_fast(tmp_path, text):
    with pytest.raises(ConfigurationError):
        load_yaml_config(_write(tmp_path, text))


def test_missing_config_file(tmp_path):
    with pytest.raises(ConfigurationError) as exc:
        load_yaml_config(tmp_path / "absent.yaml")
    assert exc.value.context["path"].endswith("absent.yaml")


def test_error_to_dict_includes_context_and_cause():
    err = ExpansionError(
        "Context expansion failed", path="a.pdf", chunk_index=3, cause=TimeoutError("slow")
    )
    payload = err.to_dict()
    assert payload["error"]["code"] == "EXPANSION_ERR"
    assert payload["context"] == {"path": "a.pdf", "chunk_index": 3}
    assert payload["cause"]["type"] == "TimeoutError"
    assert str(err) == "Context expansion failed (path=a.pdf, chunk_index=3)"


def test_error_without_context():
    err = StoreError("store unreachable")
    assert str(err) == "store unreachable"
    assert "context" not in err.to_dict()


def test_log_level_is_validated(tmp_path):
    assert load_yaml_config(_write(tmp_path, "app:\n  log_level: DEBUG\n")).app.log_level == "DEBUG"
    with pytest.raises(ConfigurationError):
        load_yaml_config(_write(tmp_path, "app:\n  log_level: chatty\n"))
