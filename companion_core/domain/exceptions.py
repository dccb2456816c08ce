"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在会话层统一捕获、记录日志并转换为兜底回复。

层级：
- LedgerError: 账户创建/充值失败（LedgerBootstrap）。
- HandshakeError: Provider 确认失败（ProviderHandshake）。
- InferError 及其子类: 推理调用各阶段失败（InferenceDispatcher）。
- SessionStartError: 链上开启会话失败，唯一会直接暴露给调用方的错误。
"""

from enum import Enum


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "ACCOUNT_CREATION_FAILED"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 wallet、provider 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class ValidationError(BusinessError):
    """参数或配置校验失败。"""


class LedgerError(BusinessError):
    """计算市场账本相关错误。"""

    ACCOUNT_CREATION_FAILED = "ACCOUNT_CREATION_FAILED"
    ACCOUNT_READ_FAILED = "ACCOUNT_READ_FAILED"
    DEPOSIT_FAILED = "DEPOSIT_FAILED"
    UNDERFUNDED = "UNDERFUNDED"


class HandshakeError(BusinessError):
    """Provider 在一次充值重试后仍无法确认。"""

    UNRECOVERABLE = "HANDSHAKE_UNRECOVERABLE"

    def __init__(self, message: str, **extra):
        super().__init__(code=self.UNRECOVERABLE, message=message, http_status=502, **extra)


class InferError(BusinessError):
    """推理调用失败的基类，子类对应具体失败阶段。"""

    default_code = "INFER_ERROR"
    default_status = 500

    def __init__(self, message: str, **extra):
        super().__init__(code=self.default_code, message=message, http_status=self.default_status, **extra)


class BadRequestError(InferError):
    """历史消息末尾不是用户消息，本地前置条件失败，不会发起网络请求。"""

    default_code = "BAD_REQUEST"
    default_status = 400


class ProviderUnavailableError(InferError):
    """Provider 返回非 2xx 状态码。"""

    default_code = "PROVIDER_UNAVAILABLE"
    default_status = 502


class MalformedResponseError(InferError):
    """HTTP 成功但响应结构无法解析。"""

    default_code = "MALFORMED_RESPONSE"
    default_status = 502


class InferTimeoutError(InferError):
    """在超时时间内没有收到响应。"""

    default_code = "TIMEOUT"
    default_status = 504


class NetworkError(InferError):
    """网络层错误，例如连接失败、DNS 解析失败等。"""

    default_code = "NETWORK_ERROR"
    default_status = 503


class UnrecoverableError(InferError):
    """账户或 Provider 握手阶段的致命错误。"""

    default_code = "UNRECOVERABLE"
    default_status = 500


class SessionStartError(BusinessError):
    """链上 startChatSession 交易失败。"""

    def __init__(self, message: str, **extra):
        super().__init__(code="SESSION_START_FAILED", message=message, http_status=402, **extra)


class LedgerErrorClass(str, Enum):
    NOT_FOUND = "not_found"
    OTHER = "other"


ACCOUNT_NOT_FOUND_PATTERN = "account does not exist"


def classify_ledger_error(err: BaseException) -> LedgerErrorClass:
    """把协作方抛出的异常归类为“账户不存在”或其他。

    目前只识别错误文本中的 "Account does not exist"（忽略大小写），
    接入其他市场 SDK 时在这里补充匹配规则。
    """

    text = getattr(err, "message", None) or str(err)
    if ACCOUNT_NOT_FOUND_PATTERN in text.lower():
        return LedgerErrorClass.NOT_FOUND
    return LedgerErrorClass.OTHER


def is_transport_failure(err: BaseException) -> bool:
    """超时与连接类错误属于传输层故障，会话层对其使用专门的兜底语句。"""

    return isinstance(err, (InferTimeoutError, NetworkError))
