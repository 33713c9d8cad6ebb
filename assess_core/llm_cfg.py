# assess_core/llm_cfg.py
from __future__ import annotations
import os, json, pathlib
from dataclasses import dataclass, fields
from openai import AzureOpenAI, OpenAI

@dataclass(frozen=True)
class AzureSettings:
    endpoint: str
    api_key: str
    deployment: str
    api_version: str

@dataclass(frozen=True)
class OpenAISettings:
    api_key: str
    base_url: str = "https://api.openai.com/v1"
    model: str = "gpt-3.5-turbo"

# env var per AzureSettings field; .azure_config.json uses the field names
_AZURE_ENV = {
    "endpoint": "AZURE_OPENAI_ENDPOINT",
    "api_key": "AZURE_OPENAI_API_KEY",
    "deployment": "AZURE_OPENAI_DEPLOYMENT",
    "api_version": "AZURE_OPENAI_API_VERSION",
}

def _file_values(path: str) -> dict:
    p = pathlib.Path(path)
    if not p.exists(): return {}
    try:
        raw = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return {}
    return {k: str(v) for k, v in raw.items() if k in _AZURE_ENV and v} if isinstance(raw, dict) else {}

def azure_settings(path: str = ".azure_config.json") -> AzureSettings:
    """Environment first; any field still empty is taken from the json file."""
    vals = {k: os.getenv(env, "") for k, env in _AZURE_ENV.items()}
    if not all(vals.values()):
        for k, v in _file_values(path).items():
            vals[k] = vals[k] or v
    missing = [_AZURE_ENV[f.name] for f in fields(AzureSettings) if not vals[f.name]]
    if missing:
        raise RuntimeError(f"Azure OpenAI not configured. Missing: {', '.join(missing)}")
    return AzureSettings(**vals)

def openai_settings() -> OpenAISettings:
    key = os.getenv("OPENAI_API_KEY", "")
    if not key:
        raise RuntimeError("OpenAI not configured. Missing: OPENAI_API_KEY")
    overrides = {k: os.getenv(env) for k, env in (("base_url", "OPENAI_BASE_URL"), ("model", "OPENAI_MODEL")) if os.getenv(env)}
    return OpenAISettings(api_key=key, **overrides)

def client(backend: str) -> tuple[OpenAI, str]:
    """Return (client, model-or-deployment) for ``azure`` or ``openai``."""
    if backend == "azure":
        s = azure_settings()
        return AzureOpenAI(azure_endpoint=s.endpoint, api_key=s.api_key, api_version=s.api_version), s.deployment
    o = openai_settings()
    return OpenAI(api_key=o.api_key, base_url=o.base_url), o.model
