"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在 API 层或上层应用做统一捕获与用户提示。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "API_ERROR"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 status_text、body、timeout_ms 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class ConfigurationError(BusinessError):
    """构造客户端时的配置错误：缺少密钥、传入了无效的 http 客户端等。"""


class ValidationError(BusinessError):
    """参数校验失败，在发起任何网络请求之前抛出。"""


class TransportError(BusinessError):
    """传输层错误的基类。"""


class ApiError(TransportError):
    """服务端返回非 2xx 状态码。

    extra 中携带 status_text 与 body（原始响应文本），便于排查。
    """

    @property
    def status_text(self) -> str:
        return self.extra.get("status_text") or ""

    @property
    def body(self) -> str:
        return self.extra.get("body") or ""


class NetworkError(TransportError):
    """网络层错误，例如连接失败、读超时等。"""


class ConnectionTerminatedError(NetworkError):
    """连接在流式响应中途被对端关闭。

    如果此时已经累积了非空回复，聚合器会把部分结果当作成功返回。
    """


class ProtocolError(BusinessError):
    """响应内容无法解析（非 JSON 的 SSE 事件、缺少 choices 的响应体等）。"""


class RequestTimeoutError(BusinessError):
    """在 timeout_ms 内没有得到回复。不会持久化任何部分结果。"""


class RequestAbortedError(BusinessError):
    """请求被 AbortSignal 取消。"""
