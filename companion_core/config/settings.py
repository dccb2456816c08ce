"""配置管理模块。

支持从环境变量、.env 以及 config.yaml 加载配置，优先级依次为：
构造参数 > 环境变量 > .env > config.yaml > secrets 目录。
"""

import os
import warnings
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from companion_core.domain.models import DEFAULT_PERSONALITY
from companion_core.providers.registry import DEFAULT_MODEL, OFFICIAL_PROVIDERS


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("COMPANION_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class Settings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- 服务钱包 / 链 ----
    private_key: Optional[str] = Field(default=None, description="服务钱包私钥，用于账本充值与请求签名")
    rpc_url: str = Field(default="https://evmrpc-testnet.0g.ai", description="EVM RPC 地址")
    contract_address: Optional[str] = Field(default=None, description="AI 代理 NFT 合约地址")
    chain_timeout: float = Field(default=120.0, ge=1.0, description="等待链上交易回执的超时（秒）")

    # ---- 推理 Provider ----
    default_model: str = Field(default=DEFAULT_MODEL, description="默认使用的模型名，由 registry 映射为 Provider 地址")
    providers: Dict[str, str] = Field(
        default_factory=lambda: dict(OFFICIAL_PROVIDERS),
        description="模型名 -> Provider 链上地址",
    )
    inference_temperature: float = Field(default=0.8, ge=0.0, le=2.0, description="生成温度")
    inference_max_tokens: int = Field(default=500, ge=1, description="单次回复最大 token 数")
    http_timeout: float = Field(default=30.0, ge=1.0, description="HTTP 超时时间（秒）")

    # ---- 账本 ----
    ledger_initial_amount: Decimal = Field(default=Decimal("0.01"), gt=0, description="创建账户时的初始存款")
    ledger_minimum_balance: Decimal = Field(default=Decimal("0.01"), ge=0, description="最低运营余额")
    ledger_top_up_amount: Decimal = Field(default=Decimal("0.02"), gt=0, description="余额不足时的充值金额")

    # ---- 会话 ----
    default_personality: str = Field(default=DEFAULT_PERSONALITY, description="代理未设置人设时使用的默认人设")
    session_welcome_message: bool = Field(default=False, description="开启会话后是否追加一条欢迎语")

    # ---- 日志 ----
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("private_key")
    @classmethod
    def validate_private_key(cls, v: Optional[str]) -> Optional[str]:
        if v and len(v.removeprefix("0x")) != 64:
            raise ValueError("private key must be 32 bytes of hex")
        return v

    @field_validator("providers")
    @classmethod
    def validate_providers(cls, v: Dict[str, str]) -> Dict[str, str]:
        for model, address in v.items():
            if not address.startswith("0x"):
                raise ValueError(f"provider address for {model!r} must be 0x-prefixed")
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )


settings = Settings()
