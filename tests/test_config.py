from core.config import AssistantConfig, load_config


def test_defaults_agree_on_storage_backend(monkeypatch, tmp_path):
    monkeypatch.delenv("ZAC_STORAGE_BACKEND", raising=False)
    assert AssistantConfig().storage_backend == "json"
    assert load_config(tmp_path).storage_backend == "json"


def test_storage_backend_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("ZAC_STORAGE_BACKEND", " SQLite ")
    assert load_config(tmp_path).storage_backend == "sqlite"


def test_memory_dir_is_under_root(monkeypatch, tmp_path):
    monkeypatch.delenv("ZAC_MEMORY_DIR", raising=False)
    cfg = load_config(tmp_path)
    assert cfg.memory_dir == (tmp_path / "memory_data").resolve()
