"""
Application configuration.
All settings are loaded from environment variables (prefix-free, case-insensitive).
Runtime-mutable access settings (mode, admin, pricing) live in bot-config.json,
see vpnpass.services.access_config.
"""
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Infrastructure settings loaded from environment variables.

    Secrets of the bot (token, provider key) are NOT here: they belong to
    bot-config.json so that backup/restore carries them along.
    """

    # ===========================================
    # DATA FILES
    # ===========================================
    # Каталог с users.json / config.json / bot-config.json (на сервере /etc/zivpn)
    data_dir: str = "/etc/zivpn"
    users_file_name: str = "users.json"
    service_config_file_name: str = "config.json"
    bot_config_file_name: str = "bot-config.json"
    domain_file_name: str = "domain"
    api_key_file_name: str = "apikey"
    lock_file_name: str = ".store.lock"
    # Сколько ждать общий lock хранилища, прежде чем считать его занятым
    store_lock_timeout: float = 10.0

    # ===========================================
    # HTTP API
    # ===========================================
    api_host: str = "0.0.0.0"
    api_port: int = 6969
    # Пусто = читать ключ из файла data_dir/apikey
    api_key: str = ""
    # Port/name of the protected service reported by /api/info
    service_port: str = "5667"
    service_name: str = "zivpn"

    # ===========================================
    # RELOAD (systemd units)
    # ===========================================
    service_unit: str = "zivpn.service"
    api_unit: str = "zivpn-api.service"
    bot_unit: str = "zivpn-bot.service"
    systemctl_bin: str = "systemctl"
    reload_timeout: float = 30.0
    # Бот не может перезапустить сам себя, пока отвечает на запрос
    bot_restart_delay: float = 2.0

    # ===========================================
    # CONVERSATION
    # ===========================================
    page_size: int = 10
    admin_min_days: int = 1
    admin_max_days: int = 9999
    self_service_min_days: int = 1
    self_service_max_days: int = 365

    # ===========================================
    # PAYMENTS (Pakasir QRIS)
    # ===========================================
    pakasir_api_base: str = "https://pakasir.com/api/v1"
    payment_method: str = "qris"
    payment_min_price: int = 500
    payment_poll_interval: float = 60.0
    payment_intent_max_age: int = 3600  # seconds
    order_id_prefix: str = "VPNPASS"
    qr_image_url: str = "https://api.qrserver.com/v1/create-qr-code/?size=300x300&data={data}"

    # ===========================================
    # EXPIRY SWEEPER
    # ===========================================
    expiry_sweep_minutes: int = 60

    # ===========================================
    # EXTERNAL HTTP
    # ===========================================
    http_client_timeout: float = 10.0
    ip_info_url: str = "http://ip-api.com/json/"
    public_ip_url: str = "https://ifconfig.me/ip"

    # ===========================================
    # CIRCUIT BREAKER
    # ===========================================
    cb_failure_threshold: int = 5
    cb_open_seconds: int = 30

    # ===========================================
    # CELERY
    # ===========================================
    celery_broker_url: str = "redis://localhost:6379/0"
    celery_result_backend: str = "redis://localhost:6379/1"

    # ===========================================
    # LOGGING
    # ===========================================
    log_level: str = "INFO"
    log_file: str | None = None
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    @field_validator("page_size")
    @classmethod
    def validate_page_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError("page_size must be positive")
        return v

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper().strip()

    @property
    def data_path(self) -> Path:
        return Path(self.data_dir)

    @property
    def users_path(self) -> Path:
        return self.data_path / self.users_file_name

    @property
    def service_config_path(self) -> Path:
        return self.data_path / self.service_config_file_name

    @property
    def bot_config_path(self) -> Path:
        return self.data_path / self.bot_config_file_name

    @property
    def domain_path(self) -> Path:
        return self.data_path / self.domain_file_name

    @property
    def api_key_path(self) -> Path:
        return self.data_path / self.api_key_file_name

    @property
    def lock_path(self) -> Path:
        return self.data_path / self.lock_file_name

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
