from assistant_core.config.settings import AssistantSettings, collect_provider_config, provider_key


def test_provider_key_slugs_id():
    assert provider_key("lm-studio", "model") == "ASSISTANT_MODEL_LM_STUDIO_MODEL"


def test_collect_provider_config_precedence(tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text(
        "ASSISTANT_MODELS=gemini\n"
        "ASSISTANT_MODEL_GEMINI_API_KEY=from-dotenv\n"
        "ASSISTANT_MODEL_GEMINI_NAME=Dotenv Gemini\n"
        "UNRELATED=1\n",
        encoding="utf-8",
    )
    yaml_data = {
        "providers": [
            {"id": "gemini", "type": "cloud-generative", "name": "Yaml Gemini", "api_key": "from-yaml"},
        ]
    }
    environ = {"ASSISTANT_MODEL_GEMINI_API_KEY": "from-env", "PATH": "/bin"}

    config = collect_provider_config(environ=environ, env_file=env_file, yaml_data=yaml_data)

    assert config["ASSISTANT_MODELS"] == "gemini"
    assert config["ASSISTANT_MODEL_GEMINI_TYPE"] == "cloud-generative"
    assert config["ASSISTANT_MODEL_GEMINI_NAME"] == "Dotenv Gemini"
    assert config["ASSISTANT_MODEL_GEMINI_API_KEY"] == "from-env"
    assert "UNRELATED" not in config
    assert "PATH" not in config


def test_yaml_provider_list_declares_models(tmp_path):
    yaml_data = {
        "providers": [
            {"id": "lmstudio", "type": "local-inference", "name": "LM Studio", "model": "m"},
            {"id": "gemini", "type": "cloud", "name": "Gemini", "api_key": "k"},
        ]
    }
    config = collect_provider_config(environ={}, env_file=tmp_path / "missing.env", yaml_data=yaml_data)
    assert config["ASSISTANT_MODELS"] == "lmstudio,gemini"
    assert config["ASSISTANT_MODEL_LMSTUDIO_MODEL"] == "m"


def test_settings_defaults(monkeypatch):
    monkeypatch.delenv("ASSISTANT_HTTP_TIMEOUT", raising=False)
    s = AssistantSettings(_env_file=None)
    assert s.http_timeout == 30.0
    assert s.max_conversations == 20
    assert s.conversation_id == "current"
