"""
Configuration management using Pydantic Settings.

Automatically loads configuration from config/codes.yaml and environment variables.
Provides type-safe access to:
- NF-e code tables (operation type, environment, freight mode, payment method, etc.)
- Browser automation settings (target site, selectors, timeouts, polling bounds)
- Pipeline settings (retries, downloads directory, log level)
"""

from pathlib import Path
from typing import Dict, List, Optional, Any
import yaml
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CodesConfig(BaseSettings):
    """
    Configuration automatically loaded from config/codes.yaml.

    Holds the NF-e code tables used to interpret the raw codes kept in a
    FiscalRecord. The parser never consults these tables: records carry the
    codes verbatim and interpretation happens in danfe_retriever.types.

    Attributes:
        tipo_nf: Operation type codes (0=entrada, 1=saída)
        ambiente: Environment codes (1=produção, 2=homologação)
        finalidade: Purpose codes (normal, complementar, ajuste, devolução)
        modalidade_frete: Freight mode codes with description and responsible party
        forma_pagamento: Payment method codes
        regime_tributario: CRT tax regime codes
        indicador_ie: Recipient state registration indicator codes
        uf: IBGE state code to state abbreviation

    Example:
        >>> config = CodesConfig()
        >>> config.tipo_nf['1']
        'NFe de saída'
        >>> config.is_valid_uf('35')
        True
    """

    tipo_nf: Dict[str, str] = Field(default_factory=dict)
    ambiente: Dict[str, str] = Field(default_factory=dict)
    finalidade: Dict[str, str] = Field(default_factory=dict)
    modalidade_frete: Dict[str, Dict[str, str]] = Field(default_factory=dict)
    forma_pagamento: Dict[str, str] = Field(default_factory=dict)
    regime_tributario: Dict[str, str] = Field(default_factory=dict)
    indicador_ie: Dict[str, str] = Field(default_factory=dict)
    uf: Dict[str, str] = Field(
        default_factory=dict,
        description="IBGE state codes accepted in access keys"
    )

    model_config = SettingsConfigDict(
        extra='ignore'
    )

    @model_validator(mode='before')
    @classmethod
    def load_yaml_config(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Load configuration from config/codes.yaml if not already provided.

        Runs before field validation and only reads the YAML file when no
        values were passed in (tests may construct the config directly).
        """
        if data:
            return data

        current_file = Path(__file__)
        project_root = current_file.parent.parent.parent  # src/danfe_retriever/config.py -> root
        config_path = project_root / 'config' / 'codes.yaml'

        if not config_path.exists():
            config_path = Path('config/codes.yaml')

        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found at {config_path}. "
                f"Ensure config/codes.yaml exists in project root."
            )

        with open(config_path, 'r', encoding='utf-8') as f:
            yaml_data = yaml.safe_load(f) or {}

        # YAML may read unquoted numeric keys as int; codes are always strings
        return {
            key: {str(code): value for code, value in (yaml_data.get(key) or {}).items()}
            for key in (
                'tipo_nf', 'ambiente', 'finalidade', 'modalidade_frete',
                'forma_pagamento', 'regime_tributario', 'indicador_ie', 'uf'
            )
        }

    def is_valid_uf(self, code: Optional[str]) -> bool:
        """
        Check if an IBGE state code is known.

        Args:
            code: Two-digit state code (e.g., '35' for SP)

        Returns:
            True if code is valid, False otherwise
        """
        if code is None:
            return False
        return code in self.uf


# Singleton pattern - loaded once, cached forever
_config: Optional[CodesConfig] = None


def get_config() -> CodesConfig:
    """
    Get global code tables instance (lazy-loaded singleton).

    Returns:
        Singleton CodesConfig instance

    Example:
        >>> config = get_config()
        >>> config is get_config()
        True
    """
    global _config
    if _config is None:
        _config = CodesConfig()
    return _config


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/141.0.0.0 Safari/537.36"
)


class AppConfig(BaseSettings):
    """
    Application configuration loaded from environment variables.

    Every timeout and attempt count of the retrieval state machine lives
    here, so the values can be tuned per deployment without code changes.

    Environment Variables (from .env):
        TARGET_URL: Portal root page (default: https://meudanfe.com.br/)
        DOWNLOADS_DIR: Transient directory for downloaded XML files
        HEADLESS: Launch Chromium headless (default: False, run under xvfb)
        RESULT_POLL_ATTEMPTS / RESULT_POLL_INTERVAL_MS: Result classification bound
        TRIGGER_POLL_ATTEMPTS / TRIGGER_POLL_INTERVAL_MS: Trigger visibility bound
        DOWNLOAD_TIMEOUT_MS: Bound for the download event
        MAX_ATTEMPTS: Pipeline attempts for retryable failures
        LOG_LEVEL: Logging level for entry points

    Example:
        >>> config = get_app_config()
        >>> config.target_url
        'https://meudanfe.com.br/'
        >>> config.result_poll_timeout_ms
        60000
    """

    # === Target site ===
    target_url: str = Field(
        default="https://meudanfe.com.br/",
        description="Root page of the DANFE portal"
    )
    search_input_selector: str = Field(default="#searchTxt")
    search_button_selector: str = Field(default="#searchBtn")
    download_button_selector: str = Field(default="#downloadXmlBtn")
    error_selectors: List[str] = Field(
        default_factory=lambda: [
            ".alert-danger",
            ".alert-error",
            ".error-message",
            ".swal2-popup",
            "[role='alert']",
        ],
        description="Elements whose visible, non-empty text signals a failed search"
    )
    not_found_phrases: List[str] = Field(
        default_factory=lambda: [
            "não encontrada",
            "não encontrado",
            "nao encontrada",
            "nao encontrado",
            "não localizada",
            "chave inválida",
            "chave de acesso inválida",
            "documento inexistente",
        ],
        description="Lower-case phrases that mean the access key does not exist"
    )

    # === Browser ===
    headless: bool = Field(
        default=False,
        description="Headed mode gets past Cloudflare; run under xvfb on servers"
    )
    slow_mo_ms: int = Field(default=100, ge=0)
    user_agent: str = Field(default=DEFAULT_USER_AGENT)
    viewport_width: int = Field(default=1366, gt=0)
    viewport_height: int = Field(default=768, gt=0)

    # === Timeouts and polling bounds ===
    navigation_timeout_ms: int = Field(default=60000, gt=0)
    settle_delay_ms: int = Field(
        default=5000,
        ge=0,
        description="Fixed wait after navigation for the passive Cloudflare check"
    )
    input_timeout_ms: int = Field(default=10000, gt=0)
    result_poll_attempts: int = Field(default=30, gt=0)
    result_poll_interval_ms: int = Field(default=2000, gt=0)
    trigger_poll_attempts: int = Field(default=20, gt=0)
    trigger_poll_interval_ms: int = Field(default=500, gt=0)
    trigger_settle_ms: int = Field(default=3000, ge=0)
    click_retries: int = Field(default=3, gt=0)
    click_backoff_ms: int = Field(default=1000, ge=0)
    click_timeout_ms: int = Field(default=5000, gt=0)
    download_timeout_ms: int = Field(default=120000, gt=0)

    # === Payload ===
    downloads_dir: str = Field(
        default="downloads",
        description="Project-relative directory for transient XML files"
    )
    min_payload_bytes: int = Field(default=100, gt=0)

    # === Pipeline ===
    max_attempts: int = Field(
        default=2,
        gt=0,
        description="Total attempts for retryable failures (1 = no retry)"
    )
    retry_backoff_ms: int = Field(default=5000, ge=0)
    verify_checksum: bool = Field(default=True)
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=False,
        extra='ignore'
    )

    @property
    def result_poll_timeout_ms(self) -> int:
        """Upper bound of the result classification loop."""
        return self.result_poll_attempts * self.result_poll_interval_ms

    @property
    def trigger_poll_timeout_ms(self) -> int:
        """Upper bound of the trigger visibility loop."""
        return self.trigger_poll_attempts * self.trigger_poll_interval_ms


# Singleton pattern - loaded once, cached forever
_app_config: Optional[AppConfig] = None


def get_app_config() -> AppConfig:
    """
    Get global application config instance (lazy-loaded singleton).

    Configuration is loaded from environment variables and .env file.
    Cached after first access for efficiency.

    Returns:
        Singleton AppConfig instance
    """
    global _app_config
    if _app_config is None:
        _app_config = AppConfig()
    return _app_config
