"""threadbot configuration schema — YAML + Pydantic + env override."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from threadbot.core.errors import ConfigurationError


DEFAULT_SYSTEM_TEMPLATE = """You are a helpful AI assistant, specialized in frontend design principles.
Use the provided tools if needed to answer the user's query.
If you or any other assistant have the final answer, prefix your response with "FINAL ANSWER" so the team knows to stop.
You have access to the following tools: {tool_names}.
{system_message}
Current time: {time}."""


# ════════════════════════════════════════════════════════════
# SUB-CONFIGS (nested BaseModel)
# ════════════════════════════════════════════════════════════


class ProviderConfig(BaseModel):
    """Single LLM provider."""

    api_key: str = ""
    api_base: str | None = None


class ProvidersConfig(BaseModel):
    """LLM / embedding providers (LiteLLM multi-provider)."""

    anthropic: ProviderConfig = Field(default_factory=ProviderConfig)
    openai: ProviderConfig = Field(default_factory=ProviderConfig)
    openrouter: ProviderConfig = Field(default_factory=ProviderConfig)
    gemini: ProviderConfig = Field(default_factory=ProviderConfig)
    groq: ProviderConfig = Field(default_factory=ProviderConfig)
    deepseek: ProviderConfig = Field(default_factory=ProviderConfig)

    timeout_s: float = 60.0
    max_retries: int = Field(default=2, ge=0, le=5)
    # Gemini rejects replayed tool calls without a thought signature
    thought_signature_fallback: str = "skip_thought_signature_validator"


class AgentConfig(BaseModel):
    """Agent loop (agent.*)."""

    name: str = "threadbot"
    model: str = "gemini/gemini-3-flash-preview"
    temperature: float = 0.1
    max_tokens: int = 4096
    system_template: str = DEFAULT_SYSTEM_TEMPLATE
    system_message: str = "You are a helpful Frontend Chatbot Agent."
    recursion_limit: int = Field(default=15, ge=1)
    max_tool_failures: int = Field(default=3, ge=1)
    tool_timeout_s: float = 30.0
    parallel_tool_calls: bool = True
    suppress_tools_after_result: bool = True


class RagConfig(BaseModel):
    embedding_backend: str = "litellm"  # litellm | sentence-transformers
    embedding_model: str = "gemini/gemini-embedding-001"
    index_path: str = "./data/faiss_index"
    text_template: str = "{name}: {description}."
    id_field: str = "principle_id"
    default_k: int = Field(default=3, ge=1)
    batch_size: int = 32
    prefetch: bool = True


class DatabaseConfig(BaseModel):
    path: str = "data/threadbot.db"
    timeout_s: float = 10.0


# ════════════════════════════════════════════════════════════
# ROOT CONFIG (BaseSettings — env + .env support)
# ════════════════════════════════════════════════════════════

_EMBEDDING_BACKENDS = frozenset({"litellm", "sentence-transformers"})

# openrouter first: its model names embed other vendors' names
_KEYWORD_PROVIDERS = {
    "openrouter": "openrouter",
    "anthropic": "anthropic",
    "claude": "anthropic",
    "openai": "openai",
    "gpt": "openai",
    "text-embedding": "openai",
    "gemini": "gemini",
    "groq": "groq",
    "deepseek": "deepseek",
}


class Config(BaseSettings):
    """
    Root configuration.

    Priority: env vars > .env > YAML (init kwargs) > defaults

    Env override examples:
        THREADBOT_AGENT__MODEL=openai/gpt-4o
        THREADBOT_DATABASE__PATH=data/prod.db
        THREADBOT_PROVIDERS__GEMINI__API_KEY=...
    """

    model_config = SettingsConfigDict(
        env_prefix="THREADBOT_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    agent: AgentConfig = Field(default_factory=AgentConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    rag: RagConfig = Field(default_factory=RagConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # YAML arrives as init kwargs; env must win over it
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @property
    def db_path(self) -> Path:
        return Path(self.database.path)

    # ── Provider helpers ────────────────────────────────────

    def get_provider(self, model: str | None = None) -> ProviderConfig | None:
        """Provider config whose keyword appears in the model name."""
        model_name = (model or self.agent.model).lower()
        for keyword, name in _KEYWORD_PROVIDERS.items():
            if keyword in model_name:
                return getattr(self.providers, name)
        return None

    def get_api_key(self, model: str | None = None) -> str | None:
        provider = self.get_provider(model)
        if provider and provider.api_key:
            return provider.api_key
        return None

    def get_api_base(self, model: str | None = None) -> str | None:
        model_name = (model or self.agent.model).lower()
        if "openrouter" in model_name:
            return self.providers.openrouter.api_base or "https://openrouter.ai/api/v1"
        provider = self.get_provider(model)
        return provider.api_base if provider else None

    def validate_runtime(self) -> None:
        """Fail fast on missing credentials. Call once at startup."""
        problems: list[str] = []
        if not _is_local(self.agent.model) and not self.get_api_key(self.agent.model):
            problems.append(f"no API key configured for chat model '{self.agent.model}'")

        backend = self.rag.embedding_backend
        if backend not in _EMBEDDING_BACKENDS:
            problems.append(f"unknown embedding backend '{backend}'")
        elif backend == "litellm" and not _is_local(self.rag.embedding_model):
            if not self.get_api_key(self.rag.embedding_model):
                problems.append(
                    f"no API key configured for embedding model '{self.rag.embedding_model}'"
                )

        if problems:
            raise ConfigurationError("; ".join(problems), problems=problems)


def _is_local(model: str) -> bool:
    return model.startswith(("ollama/", "ollama_chat/"))
