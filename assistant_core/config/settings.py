"""配置管理模块。

支持从 .env、config.yaml 以及环境变量加载配置。

应用级配置（超时、存储目录、日志等）由 pydantic-settings 管理；
Provider 声明是按 id 动态展开的键，无法事先写成字段，
因此由 collect_provider_config 单独收集成扁平的键值映射，再交给 registry 校验。
"""

import os
import re
import warnings
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional

import yaml
from dotenv import dotenv_values
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


ENV_PREFIX = "ASSISTANT_"
# Provider 相关键：ASSISTANT_MODELS 与 ASSISTANT_MODEL_<ID>_<FIELD>
PROVIDER_KEY_PREFIX = f"{ENV_PREFIX}MODEL"
PROVIDER_LIST_KEY = f"{ENV_PREFIX}MODELS"

DEFAULT_GREETING = "Hello! I'm your AI Assistant. How can I help you today?"

_PROJECT_ROOT = Path(__file__).resolve().parents[2]


def provider_key(provider_id: str, field: str) -> str:
    """ASSISTANT_MODEL_<ID>_<FIELD>，id 中的非字母数字字符替换为下划线。"""

    slug = re.sub(r"[^A-Z0-9]", "_", provider_id.strip().upper())
    return f"{PROVIDER_KEY_PREFIX}_{slug}_{field.upper()}"


def _env_file_candidates() -> Iterable[Path]:
    return [Path.cwd() / ".env", _PROJECT_ROOT / ".env"]


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv(f"{ENV_PREFIX}CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        _PROJECT_ROOT / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class AssistantSettings(BaseSettings):
    """应用配置（使用 Pydantic）。"""

    # ---- Provider 相关配置 ----
    models: str = Field(
        default="",
        description="逗号分隔的 Provider id 列表，声明顺序决定默认 Provider",
    )

    http_timeout: float = Field(default=30.0, ge=1.0, description="HTTP 超时时间（秒）")
    storage_root: str = Field(default=".storage", description="本地存储根目录")
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")
    max_conversations: int = Field(default=20, ge=1, le=500, description="最多保留的会话数")
    conversation_id: str = Field(default="current", description="启动时使用的会话 ID")
    greeting: str = Field(default=DEFAULT_GREETING, description="新会话的欢迎语，为空则不添加")
    speech_language: str = Field(default="en-US", description="语音识别与朗读的语言")

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        data = {k: v for k, v in _load_config_from_yaml().items() if k != "providers"}
        if isinstance(data.get("models"), list):
            data["models"] = ",".join(str(m) for m in data["models"])
        return data

    @field_validator("conversation_id")
    @classmethod
    def validate_conversation_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("conversation_id must not be empty")
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )


def _flatten_yaml_providers(data: Mapping[str, Any]) -> Dict[str, str]:
    """把 config.yaml 中的 providers 列表展开成与环境变量相同的键。

    providers:
      - id: gemini
        type: cloud-generative
        api_key: ...
    """

    flat: Dict[str, str] = {}
    models = data.get("models")
    if models:
        flat[PROVIDER_LIST_KEY] = ",".join(str(m) for m in models) if isinstance(models, list) else str(models)
    providers = data.get("providers") or []
    if not isinstance(providers, list):
        warnings.warn("config.yaml: providers must be a list, ignored")
        return flat
    ids = []
    for entry in providers:
        if not isinstance(entry, dict) or not entry.get("id"):
            continue
        pid = str(entry["id"]).strip()
        ids.append(pid)
        for key, value in entry.items():
            if key == "id" or value is None:
                continue
            flat[provider_key(pid, str(key))] = str(value)
    if ids and PROVIDER_LIST_KEY not in flat:
        flat[PROVIDER_LIST_KEY] = ",".join(ids)
    return flat


def _provider_keys(source: Mapping[str, Optional[str]]) -> Dict[str, str]:
    return {
        k.upper(): v
        for k, v in source.items()
        if v is not None and k.upper().startswith(PROVIDER_KEY_PREFIX)
    }


def collect_provider_config(
    environ: Optional[Mapping[str, str]] = None,
    env_file: Optional[Path] = None,
    yaml_data: Optional[Mapping[str, Any]] = None,
) -> Dict[str, str]:
    """收集 Provider 声明，优先级：进程环境 > .env > config.yaml。"""

    config: Dict[str, str] = {}
    config.update(_flatten_yaml_providers(yaml_data if yaml_data is not None else _load_config_from_yaml()))

    env_paths = [env_file] if env_file else _env_file_candidates()
    for path in env_paths:
        if path and path.exists():
            config.update(_provider_keys(dotenv_values(path)))
            break

    config.update(_provider_keys(environ if environ is not None else os.environ))
    return config


settings = AssistantSettings()

# 类型别名，让外部代码可以使用 Settings 类型
Settings = type(settings)
