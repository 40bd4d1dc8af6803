from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
	# Provider can be "vertex" (Vertex AI Express) or "ai_studio" (Generative Language API)
	gemini_provider: str = Field(default="ai_studio", validation_alias="GEMINI_PROVIDER")
	gemini_model: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_MODEL")
	# Optional: cheaper model for the progress check
	gemini_model_progress: str | None = Field(default=None, validation_alias="GEMINI_MODEL_PROGRESS")
	# Vertex configuration
	vertex_region: str = Field(default="us-central1", validation_alias="GEMINI_VERTEX_REGION")
	vertex_project: str | None = Field(default=None, validation_alias="GEMINI_VERTEX_PROJECT")

	# OpenRouter fallback configuration (optional)
	openrouter_api_key: str | None = Field(default=None, validation_alias="OPENROUTER_API_KEY")
	openrouter_model: str = Field(default="x-ai/grok-4-fast:free", validation_alias="OPENROUTER_MODEL")
	openrouter_base_url: str = Field(default="https://openrouter.ai/api/v1/chat/completions", validation_alias="OPENROUTER_BASE_URL")
	openrouter_referer: str = Field(default="https://localhost", validation_alias="OPENROUTER_HTTP_REFERER")
	openrouter_title: str = Field(default="Math Journey", validation_alias="OPENROUTER_TITLE")

	# One bounded timeout per completion call; expiry is reported like any other remote failure
	completion_timeout_seconds: float = Field(default=60.0, validation_alias="COMPLETION_TIMEOUT_SECONDS")
	# USD per million tokens, used for usage logging only
	completion_input_cost_per_million: float = Field(default=0.30, validation_alias="COMPLETION_INPUT_COST_PER_MILLION")
	completion_output_cost_per_million: float = Field(default=2.50, validation_alias="COMPLETION_OUTPUT_COST_PER_MILLION")

	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")
	store_conflict_retries: int = Field(default=3, validation_alias="STORE_CONFLICT_RETRIES")

	# Question bank JSON file seeded into worksheets at startup (optional)
	question_bank_path: str | None = Field(default=None, validation_alias="QUESTION_BANK_PATH")

	cors_origins: list[str] = Field(default=["*"], validation_alias="CORS_ORIGINS")
	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
