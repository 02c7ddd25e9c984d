# 搜索引擎的异常定义
from typing import Optional


class SearchEngineError(Exception):
    """搜索引擎库的基础异常类"""

    pass


class RegistrationError(SearchEngineError):
    """搜索引擎注册失败时抛出"""

    pass


class ConfigurationError(SearchEngineError):
    """当搜索引擎配置不完整或错误时抛出"""

    pass


class AuthError(SearchEngineError):
    """服务端拒绝了凭据 (HTTP 401/403)"""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class RequestFailed(SearchEngineError):
    """网络错误、超时或非 2xx 响应"""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class RateLimited(RequestFailed):
    """服务端返回 429"""

    pass


class ParseError(SearchEngineError):
    """响应内容不符合预期的结构"""

    pass


class Unsupported(SearchEngineError):
    """该引擎没有实现此操作"""

    def __init__(self, engine_name: str, operation: str):
        super().__init__(f"[{engine_name}] 不支持操作: {operation}")
        self.engine_name = engine_name
        self.operation = operation
