from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_FE_SIGNALS = (
    "eyJzdGFydCI6MTc0OTgyODU3NzE1NiwiZXZlbnRzIjpbeyJuYW1lIjoic3RhcnROZXdDaGF0Iiwi"
    "ZGVsdGEiOjYwfV0sImVuZCI6NTM4MX0="
)
DEFAULT_FE_VERSION = "serp_20250613_094749_ET-cafd73f97f51c983eb30"
DEFAULT_VQD_HASH_1 = (
    "eyJzZXJ2ZXJfaGFzaGVzIjpbIm5oWlUrcVZ3d3dzODFPVStDTm4vVkZJcS9DbXBSeGxYY2E5cHpG"
    "Q0JVZUk9IiwiajRNNmNBRzRheVFqQ21kWkN0a1IzOFY3eVRpd1gvZ2RmcDFueFhEdlV3cz0iXSwi"
    "Y2xpZW50X2hhc2hlcyI6WyJpRTNqeXRnSm0xZGJaZlo1bW81M1NmaVAxdXUxeEdzY0F5RnB3V2NV"
    "OUtrPSIsInJaRGtaR2h4S0JEL1JuY00xVVNraHZNM3pLdEJzQmlzSlJTWFF4L2QzRFU9Il0sInNp"
    "Z25hbHMiOnt9LCJtZXRhIjp7InYiOiIzIiwiY2hhbGxlbmdlX2lkIjoiODU3NjA5YjlmMTg2NThl"
    "MWM0MzZhZWI2MGM0MDc1ZjdhYWNmYmI0OTlhY2Y4NTVmNDJkNWRjZmM5MTViNDhiOGg4amJ0Iiwi"
    "dGltZXN0YW1wIjoiMTc0OTgyODU3NjQ5NyIsIm9yaWdpbiI6Imh0dHBzOi8vZHVja2R1Y2tnby5j"
    "b20iLCJzdGFjayI6IkVycm9yXG5hdCBiYSAoaHR0cHM6Ly9kdWNrZHVja2dvLmNvbS9kaXN0L3dw"
    "bS5jaGF0LmNhZmQ3M2Y5N2Y1MWM5ODNlYjMwLmpzOjE6NzQ4MDMpXG5hdCBhc3luYyBkaXNwYXRj"
    "aFNlcnZpY2VJbml0aWFsVlFEIChodHRwczovL2R1Y2tkdWNrZ28uY29tL2Rpc3Qvd3BtLmNoYXQu"
    "Y2FmZDczZjk3ZjUxYzk4M2ViMzAuanM6MTo5OTUyOSkifX0="
)

# Cookies the web front-end carries on every request to duckduckgo.com.
UPSTREAM_COOKIES: dict[str, str] = {
    "5": "1",
    "dcm": "3",
    "dcs": "1",
    "duckassist-opt-in-count": "1",
    "isRecentChatOn": "1",
    "preferredDuckAiModel": "3",
}


class Settings(BaseSettings):
    # Read from OS env and optional .env file in project root.
    _project_root = Path(__file__).parent.parent

    model_config = SettingsConfigDict(
        env_file=str(_project_root / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Upstream endpoints
    upstream_origin: str = Field(
        "https://duckduckgo.com",
        alias="DUCKCHAT_ORIGIN",
        description="Origin / Referer sent with every upstream request",
    )
    status_url: str = Field(
        "https://duckduckgo.com/duckchat/v1/status",
        alias="DUCKCHAT_STATUS_URL",
        description="Endpoint handing out the x-vqd-4 token",
    )
    chat_url: str = Field(
        "https://duckduckgo.com/duckchat/v1/chat",
        alias="DUCKCHAT_CHAT_URL",
        description="Endpoint receiving conversation turns",
    )

    # Timeouts and retry policy
    token_timeout: float = Field(
        10.0,
        alias="DUCKCHAT_TOKEN_TIMEOUT",
        description="Timeout (seconds) of one token acquisition",
        gt=0,
    )
    turn_timeout: float = Field(
        30.0,
        alias="DUCKCHAT_TURN_TIMEOUT",
        description="Timeout (seconds) of one chat turn request",
        gt=0,
    )
    max_retries: int = Field(
        3,
        alias="DUCKCHAT_MAX_RETRIES",
        description="Refresh-and-retry attempts allowed per turn after an anti-bot rejection",
        ge=0,
    )
    retry_backoff_seconds: float = Field(
        2.0,
        alias="DUCKCHAT_RETRY_BACKOFF_SECONDS",
        description="Pause before refreshing the token after a rejection",
        ge=0,
    )
    stream_queue_size: int = Field(
        100,
        alias="DUCKCHAT_STREAM_QUEUE_SIZE",
        description="Capacity of the fragment queue between decoder task and consumer",
        ge=1,
    )

    # Transport
    impersonate: str = Field(
        "chrome",
        alias="DUCKCHAT_IMPERSONATE",
        description="curl-cffi browser fingerprint, e.g. 'chrome', 'chrome120', 'safari15_5'",
    )
    proxy: str | None = Field(
        None,
        alias="DUCKCHAT_PROXY",
        description="Optional outbound proxy URL used for all upstream calls",
    )
    default_model: str = Field(
        "gpt-4o-mini",
        alias="DUCKCHAT_DEFAULT_MODEL",
        description="Model used when the caller does not pick one",
    )

    # Browser-mimic headers for upstream
    user_agent: str = Field(
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/137.0.0.0 Safari/537.36",
        alias="DUCKCHAT_USER_AGENT",
    )
    sec_ch_ua: str = Field(
        '"Brave";v="137", "Chromium";v="137", "Not/A)Brand";v="24"',
        alias="DUCKCHAT_SEC_CH_UA",
    )
    accept_language: str = Field("fr-FR,fr;q=0.6", alias="DUCKCHAT_ACCEPT_LANGUAGE")

    # Anti-automation telemetry, tied to one front-end build; rotate via env.
    fe_signals: str = Field(DEFAULT_FE_SIGNALS, alias="DUCKCHAT_FE_SIGNALS")
    fe_version: str = Field(DEFAULT_FE_VERSION, alias="DUCKCHAT_FE_VERSION")
    vqd_hash_1: str = Field(DEFAULT_VQD_HASH_1, alias="DUCKCHAT_VQD_HASH_1")

    # Front door
    host: str = Field("0.0.0.0", alias="HOST")
    port: int = Field(8080, alias="PORT")
    cors_allow_origins: str = Field(
        "*",
        alias="CORS_ALLOW_ORIGINS",
        description="Allowed CORS origins, comma separated",
    )

    # Logging
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_timezone: str | None = Field(None, alias="LOG_TIMEZONE")
    log_dir: str = Field("logs", alias="LOG_DIR")

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_allow_origins.split(",") if o.strip()]


settings = Settings()  # Reads from environment if available


def build_browser_headers(cfg: Settings | None = None) -> dict[str, str]:
    """
    Headers shared by every upstream request so the gateway looks like the
    web front-end opened in a desktop browser.
    """
    cfg = cfg or settings
    return {
        "Accept-Language": cfg.accept_language,
        "DNT": "1",
        "Priority": "u=1, i",
        "Referer": f"{cfg.upstream_origin}/",
        "Sec-CH-UA": cfg.sec_ch_ua,
        "Sec-CH-UA-Mobile": "?0",
        "Sec-CH-UA-Platform": '"Windows"',
        "Sec-Fetch-Dest": "empty",
        "Sec-Fetch-Mode": "cors",
        "Sec-Fetch-Site": "same-origin",
        "Sec-GPC": "1",
        "User-Agent": cfg.user_agent,
    }
