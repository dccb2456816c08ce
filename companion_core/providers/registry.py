"""Provider 注册表。

本模块将“模型名”与“Provider 链上地址”解耦：

- 模型名（model_name）：在代码和配置里使用的名称，例如 "llama-3.3-70b-instruct"。
- Provider 地址：计算市场里提供该模型推理服务的链上地址。

这是配置期确定的静态查找表，不做服务发现。上层把 ProviderRegistry
作为显式参数传入，测试中可以直接替换。
"""

from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

from companion_core.domain.exceptions import ValidationError


# 官方 Provider 地址
OFFICIAL_PROVIDERS: Mapping[str, str] = {
    "llama-3.3-70b-instruct": "0xf07240Efa67755B5311bc75784a061eDB47165Dd",
    "deepseek-r1-70b": "0x3feE5a4dd5FDb8a32dDA97Bed899830605dBD9D3",
}

DEFAULT_MODEL = "llama-3.3-70b-instruct"


@dataclass
class ProviderRegistry:
    """模型名 -> Provider 地址的映射，模型名不区分大小写。"""

    providers: Dict[str, str] = field(default_factory=lambda: dict(OFFICIAL_PROVIDERS))
    default_model: str = DEFAULT_MODEL

    @classmethod
    def from_settings(cls, cfg) -> "ProviderRegistry":
        return cls(
            providers=dict(getattr(cfg, "providers", None) or OFFICIAL_PROVIDERS),
            default_model=getattr(cfg, "default_model", DEFAULT_MODEL),
        )

    def resolve(self, model_name: Optional[str] = None) -> str:
        """根据模型名获取 Provider 地址，未指定时使用默认模型。"""

        key = (model_name or self.default_model).lower()
        for name, address in self.providers.items():
            if name.lower() == key:
                return address
        raise ValidationError(
            code="UNKNOWN_MODEL",
            message=f"Unknown model: {model_name or self.default_model!r}",
        )

    def models(self) -> list[str]:
        return sorted(self.providers)
