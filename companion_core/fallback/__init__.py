"""兜底回复：远程推理失败时的本地替代回复。"""

from companion_core.fallback.responses import (
    ERROR_RESPONSES,
    FALLBACK_RESPONSES,
    FallbackResponseEngine,
    select_response_category,
)

__all__ = ["FallbackResponseEngine", "select_response_category", "FALLBACK_RESPONSES", "ERROR_RESPONSES"]
