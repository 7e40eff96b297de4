"""统一业务异常模型。

所有跨模块抛出的业务级错误都继承自 BusinessError，
便于在引擎层或 UI 层做统一捕获与用户提示。

分类：
- ConfigurationError: 缺少凭据/模型/URL，Provider 被排除，不影响整个应用。
- ProviderError: 上游 HTTP 失败、响应格式异常、连接被拒绝。
- SpeechError: 语音识别/合成失败，状态复位，不自动重试。
- StorageError: 序列化失败或配额不足，调用方以“空数据”为基线继续运行。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "STORE_READ_ERROR"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 provider_id、url 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class ConfigurationError(BusinessError):
    """配置缺失或无效（API Key、模型名、URL、未知 Provider 等）。"""


class ProviderError(BusinessError):
    """Provider 调用失败，会以错误消息的形式出现在会话中。"""


class NetworkError(ProviderError):
    """网络层错误，例如连接失败、超时等。"""


class ApiError(ProviderError):
    """上游返回非 2xx 状态或响应体格式不符合预期。"""


class SpeechError(BusinessError):
    """语音识别或语音合成失败。"""


class StorageError(BusinessError):
    """本地存储读写失败（含配额超限）。"""
