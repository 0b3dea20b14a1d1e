"""
Trading configuration and environment loading.
"""

import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

ENV_PREFIX = "SAFE_TRADER_"

POLYGON_CHAIN_ID = 137


@dataclass
class TradingConfig:
    """Configuration shared by the session machine, gateways and order engine."""

    chain_id: int = POLYGON_CHAIN_ID
    clob_url: str = "https://clob.polymarket.com"
    relayer_url: str = "https://relayer-v2.polymarket.com"
    data_api_url: str = "https://data-api.polymarket.com"
    gamma_url: str = "https://gamma-api.polymarket.com"
    rpc_url: str = "https://polygon-rpc.com"

    session_dir: str = str(Path.home() / ".safe_trader" / "sessions")
    session_max_age_days: int = 30

    timeout: float = 30.0
    max_retries: int = 3
    retry_delay: float = 1.0

    buy_slippage: float = 0.02
    sell_slippage: float = 0.10
    min_sell_slippage: float = 0.01
    min_order_notional: float = 1.0

    deploy_safe: bool = True
    set_approvals: bool = True
    relayer_poll_interval: float = 2.0
    relayer_timeout: float = 120.0

    # Builder credentials authenticate relayer submissions
    builder_api_key: Optional[str] = None
    builder_secret: Optional[str] = None
    builder_passphrase: Optional[str] = None

    verbose: bool = False

    def to_dict(self) -> Dict:
        """Convert to dict, excluding None values."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    @property
    def has_builder_credentials(self) -> bool:
        return bool(self.builder_api_key and self.builder_secret and self.builder_passphrase)


def _env_bool(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


def _load_env_config() -> TradingConfig:
    """Load config from SAFE_TRADER_* environment variables."""
    config = TradingConfig()

    for field in fields(TradingConfig):
        raw = os.getenv(f"{ENV_PREFIX}{field.name.upper()}")
        if raw is None or raw == "":
            continue

        default = getattr(config, field.name)
        if isinstance(default, bool):
            value: Any = _env_bool(raw)
        elif isinstance(default, int):
            value = int(raw)
        elif isinstance(default, float):
            value = float(raw)
        else:
            value = raw
        setattr(config, field.name, value)

    return config


def _merge_config(target: TradingConfig, overrides: Dict[str, Any]) -> None:
    """Merge explicit overrides into target config."""
    known = {f.name for f in fields(TradingConfig)}
    unknown = [key for key in overrides if key not in known]
    if unknown:
        raise ValueError(f"Unknown config fields: {unknown}")

    for key, value in overrides.items():
        if value is not None:
            setattr(target, key, value)


def _validate_config(config: TradingConfig) -> None:
    """Validate that config values are present and in range."""
    required = ["clob_url", "relayer_url", "data_api_url", "gamma_url", "rpc_url", "session_dir"]
    missing = [key for key in required if not getattr(config, key, None)]

    if missing:
        env_vars = [f"{ENV_PREFIX}{key.upper()}" for key in missing]
        raise ValueError(f"Missing required config: {missing}. Set env vars: {env_vars}")

    for key in ("buy_slippage", "sell_slippage", "min_sell_slippage"):
        value = getattr(config, key)
        if not 0 <= value < 1:
            raise ValueError(f"{key} must be in [0, 1), got: {value}")

    for key in ("timeout", "relayer_poll_interval", "relayer_timeout"):
        if getattr(config, key) <= 0:
            raise ValueError(f"{key} must be positive, got: {getattr(config, key)}")

    if config.session_max_age_days <= 0:
        raise ValueError(
            f"session_max_age_days must be positive, got: {config.session_max_age_days}"
        )

    if config.max_retries < 0:
        raise ValueError(f"max_retries must be >= 0, got: {config.max_retries}")


def load_config(
    *,
    use_env: bool = True,
    env_file: Optional[str] = None,
    validate: bool = True,
    **overrides: Any,
) -> TradingConfig:
    """
    Build a TradingConfig.

    Args:
        use_env: Whether to read SAFE_TRADER_* environment variables
        env_file: Optional .env path loaded before reading the environment
        validate: Whether to validate the resulting config
        **overrides: Explicit field values that win over the environment

    Returns:
        Configured TradingConfig

    Raises:
        ValueError: If a field is unknown or a value is out of range

    Example:
        >>> config = load_config(rpc_url="https://polygon.llamarpc.com")
        >>> config = load_config(use_env=False, set_approvals=False)
    """
    if use_env:
        load_dotenv(env_file)
        config = _load_env_config()
    else:
        config = TradingConfig()

    _merge_config(config, overrides)

    if validate:
        _validate_config(config)

    return config


def validate_private_key(key: str) -> bool:
    """
    Validate private key format.

    Args:
        key: Private key to validate

    Returns:
        True if valid, False if empty

    Raises:
        ValueError: If key format is invalid
    """
    if not key:
        return False

    clean_key = key[2:] if key.startswith("0x") else key

    # 64 hex chars = 32 bytes
    if len(clean_key) != 64:
        raise ValueError("Invalid private key length. Expected 64 hex characters (32 bytes).")

    try:
        int(clean_key, 16)
    except ValueError:
        raise ValueError("Invalid private key format. Must be valid hexadecimal.")

    return True


def load_private_key(env_file: Optional[str] = None) -> str:
    """Read SAFE_TRADER_PRIVATE_KEY from the environment and validate it."""
    load_dotenv(env_file)
    key = os.getenv(f"{ENV_PREFIX}PRIVATE_KEY", "")
    if not validate_private_key(key):
        raise ValueError(f"Missing required config: private key. Set env var: {ENV_PREFIX}PRIVATE_KEY")
    return key
