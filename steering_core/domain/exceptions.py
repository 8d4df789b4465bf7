"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在 API 层做统一捕获，并以 {"error": message} 的形式返回给调用方。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "STORE_READ_ERROR"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 session_id、model 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class UnauthenticatedError(BusinessError):
    """缺少或无法识别调用方身份。"""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(code="UNAUTHENTICATED", message=message, http_status=401)


class NoActiveConfigurationError(BusinessError):
    """调用方没有处于激活状态的配置。"""

    def __init__(self, message: str = "No active AI configuration found", **extra):
        super().__init__(code="NO_ACTIVE_CONFIGURATION", message=message, http_status=400, **extra)


class UnsupportedProviderError(BusinessError):
    """Provider 或模型不在注册表中，在任何网络调用之前抛出。"""

    def __init__(self, provider: str, model: str | None = None):
        if model is None:
            message = f"Unsupported provider: {provider}"
        else:
            message = f"Unsupported model {model!r} for provider {provider}"
        super().__init__(
            code="UNSUPPORTED_PROVIDER",
            message=message,
            http_status=400,
            provider=provider,
            model=model,
        )


class SessionNotFoundError(BusinessError):
    def __init__(self, session_id: str):
        super().__init__(
            code="SESSION_NOT_FOUND",
            message=f"Session not found: {session_id}",
            http_status=404,
            session_id=session_id,
        )


class SessionPausedError(BusinessError):
    """会话已暂停，拒绝新的中继请求。"""

    def __init__(self, session_id: str):
        super().__init__(
            code="SESSION_PAUSED",
            message=f"Session {session_id} is paused",
            http_status=409,
            session_id=session_id,
        )


class ValidationError(BusinessError):
    """参数或配置校验失败。"""


class ProviderError(BusinessError):
    """厂商 HTTP/网络/响应结构错误。

    适配器只抛出此类（及其子类）；Dispatcher 原样向上传递，
    只在 extra 中补充 session/model 上下文。
    """

    def __init__(self, vendor: str, message: str, http_status: int = 500, **extra):
        self.vendor = vendor
        super().__init__(code="PROVIDER_ERROR", message=message, http_status=http_status, **extra)


class ProviderTimeoutError(ProviderError):
    """厂商调用超过 http_timeout 仍未返回。"""

    def __init__(self, vendor: str, timeout: float):
        super().__init__(
            vendor,
            f"{vendor} API error: request timed out after {timeout:g}s",
            http_status=504,
            timeout=timeout,
        )
        self.code = "PROVIDER_TIMEOUT"


class PersistenceError(BusinessError):
    """配置/会话/消息写入失败。"""

    def __init__(self, message: str, http_status: int = 500, **extra):
        super().__init__(code="PERSISTENCE_ERROR", message=message, http_status=http_status, **extra)
