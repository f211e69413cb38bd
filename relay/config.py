from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_HELP_REPLY = (
    "Commands:\n"
    "/help - show this message\n"
    "/gpt, /qwen, /spark, /gemini, /echo - switch backend\n"
    "/prompt <text> - set a system prompt for the current backend\n"
    "/getpmt - show the current system prompt\n"
    "/cpmt - remove the current system prompt"
)
DEFAULT_SUBSCRIBE_REPLY = "Thanks for following! "


class Settings(BaseSettings):
    # ===== STORAGE =====
    kv_url: Optional[str] = Field(default=None, validation_alias=AliasChoices("KV_URL", "REDIS_URL"))
    kv_socket_timeout_seconds: float = 1.0
    default_ttl_seconds: int = 1800
    history_ttl_seconds: int = 600
    pending_result_ttl_seconds: int = 300
    memory_mirror_ttl_seconds: int = 60
    memory_cache_max_entries: int = 10000
    history_max_turns: int = 20
    persist_workers: int = 4
    persist_queue_size: int = 256

    # ===== BRIDGE =====
    bot_type: str = "echo"
    reply_deadline_seconds: float = 4.5
    background_ceiling_seconds: float = 120.0
    provider_timeout_seconds: float = 60.0

    # ===== BACKENDS =====
    gpt_token: Optional[SecretStr] = None
    gpt_url: str = "https://api.openai.com/v1/"
    gpt_model: str = "gpt-4o-mini"

    qwen_api_key: Optional[SecretStr] = None
    qwen_url: str = "https://dashscope.aliyuncs.com/compatible-mode/v1/"
    qwen_model: str = "qwen-turbo"

    spark_api_password: Optional[SecretStr] = None
    spark_url: str = "https://spark-api-open.xf-yun.com/v1/"
    spark_model: str = "generalv3.5"

    gemini_api_key: Optional[SecretStr] = None
    gemini_url: str = "https://generativelanguage.googleapis.com/v1beta/"
    gemini_model: str = "gemini-1.5-flash"

    # ===== REPLIES =====
    help_reply: str = Field(
        default=DEFAULT_HELP_REPLY,
        validation_alias=AliasChoices("WX_HELP_REPLY", "HELP_REPLY"),
    )
    subscribe_reply: str = Field(
        default=DEFAULT_SUBSCRIBE_REPLY,
        validation_alias=AliasChoices("WX_SUBSCRIBE_REPLY", "SUBSCRIBE_REPLY"),
    )
    bot_welcome_reply: str = "{backend} is ready, let's chat!"

    # ===== MENU EVENTS =====
    event_key_gpt: str = Field(default="chat-gpt", validation_alias="WX_EVENT_KEY_CHAT_GPT")
    event_key_spark: str = Field(default="chat-spark", validation_alias="WX_EVENT_KEY_CHAT_SPARK")
    event_key_qwen: str = Field(default="chat-qwen", validation_alias="WX_EVENT_KEY_CHAT_QWEN")
    event_key_gemini: str = Field(default="chat-gemini", validation_alias="WX_EVENT_KEY_CHAT_GEMINI")

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
