"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在 API 层做统一捕获与用户提示。

注意：上游 Provider 的失败不走异常，而是以 ProviderError 值返回
（见 domain.models），编排层据此做回退决策。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "INVALID_CONVERSATION"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 reason、provider 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class ValidationError(BusinessError):
    """请求参数或会话结构校验失败，直接映射为 400，不重试。"""


class ProvidersExhaustedError(BusinessError):
    """两个 Provider 都无法提供回答。

    仅作为内部信号用于日志与告警，编排层会把它转换为一条
    礼貌的兜底回复（HTTP 200），不会抛给终端用户。
    """

    def __init__(self, message: str = "all providers exhausted", **extra):
        super().__init__(code="PROVIDERS_EXHAUSTED", message=message, http_status=200, **extra)
