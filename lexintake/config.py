from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    debug: bool = False
    log_level: str = "INFO"
    port: int = 10000

    # WhatsApp Cloud API
    whatsapp_verify_token: str = "meu_token_teste"
    whatsapp_app_secret: Optional[str] = None
    whatsapp_token: Optional[str] = None
    whatsapp_phone_number_id: Optional[str] = None
    whatsapp_api_version: str = "v19.0"
    whatsapp_api_base_url: str = "https://graph.facebook.com"
    send_timeout_seconds: float = 30.0

    # "triage" runs the intake script, "assistant" answers with the LLM
    reply_mode: str = "triage"
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    assistant_system_prompt: str = (
        "Você é o assistente virtual de um escritório de advocacia. "
        "Responda em português, de forma breve e cordial, sem dar parecer jurídico, "
        "e convide a pessoa a informar nome, cidade e um resumo do caso."
    )

    # ops alerts (Telegram)
    alert_bot_token: Optional[str] = None
    alert_chat_id: Optional[str] = None
    alert_cooldown_seconds: float = 300.0

    crm_upsert_url: Optional[str] = None
    crm_api_token: Optional[str] = None

    session_backend: str = "memory"
    redis_url: str = "redis://localhost:6379/0"
    redis_socket_timeout_seconds: float = 0.5
    session_ttl_seconds: int = 86400
    session_sweep_interval_seconds: float = 300.0

    escalation_delay_seconds: float = 30.0
    escalation_cancel_on_new_message: bool = False

    business_hours_start: int = 8
    business_hours_end: int = 19
    office_timezone: str = "America/Sao_Paulo"

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
