from assistant_core.providers import CloudGenerativeClient, LocalInferenceClient, create_adapter
from assistant_core.providers.registry import ProviderRegistry

CONFIG = {
    "ASSISTANT_MODELS": "gemini,lmstudio",
    "ASSISTANT_MODEL_GEMINI_TYPE": "gemini",
    "ASSISTANT_MODEL_GEMINI_NAME": "Gemini",
    "ASSISTANT_MODEL_GEMINI_API_KEY": "k",
    "ASSISTANT_MODEL_LMSTUDIO_TYPE": "lmstudio",
    "ASSISTANT_MODEL_LMSTUDIO_NAME": "LM Studio",
    "ASSISTANT_MODEL_LMSTUDIO_MODEL": "m",
}


class SettingsStub:
    http_timeout = 2.0


def test_create_adapter_dispatches_on_family():
    registry = ProviderRegistry.load(CONFIG)
    cloud = create_adapter(registry.get("gemini"), SettingsStub())
    local = create_adapter(registry.get("lmstudio"), SettingsStub())
    assert isinstance(cloud, CloudGenerativeClient)
    assert isinstance(local, LocalInferenceClient)
    assert cloud.name == "gemini"
    assert local.descriptor.model_name == "m"
    assert cloud.history == [] and local.history == []
