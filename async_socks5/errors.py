"""
SOCKS5 客户端 - 错误类型模块

本模块定义了 SOCKS5 连接过程中可能出现的所有错误类型。

错误层次:
    Socks5Error
    ├── HandshakeFailed         方法协商失败（服务器没有可接受的认证方法）
    ├── AuthenticationFailed    用户名/密码子协商失败，或服务器选择了未提供的认证方法
    ├── ConnectionFailed        CONNECT 请求被代理拒绝（应答码非零）
    ├── UnsupportedAddressType  地址编码前置条件不满足（域名/凭据过长、端口非法等）
    ├── UnexpectedResponse      应答格式错误（版本号不符、未知地址类型）
    └── TransportError          底层 I/O 错误，cause 属性保存原始异常

每个错误都带有 state 属性，记录连接尝试失败时所处的状态。
"""

from typing import Optional


class Socks5Error(Exception):
    """
    所有 SOCKS5 错误的基类

    Attributes:
        state: 失败时连接尝试所处的状态（ConnectState），编码阶段失败时为 None
    """

    default_message = "SOCKS5 错误"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)
        self.state = None


class HandshakeFailed(Socks5Error):
    """方法协商失败"""

    default_message = "握手失败"

    def __init__(self, message: Optional[str] = None, method: Optional[int] = None):
        super().__init__(message)
        self.method = method


class AuthenticationFailed(Socks5Error):
    """认证失败"""

    default_message = "认证失败"

    def __init__(self, message: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class ConnectionFailed(Socks5Error):
    """
    CONNECT 请求失败

    Attributes:
        reply_code: 代理返回的应答码（RFC 1928 REP 字段）
        reason: 应答码对应的描述
    """

    default_message = "连接失败"

    def __init__(self, message: Optional[str] = None, reply_code: Optional[int] = None,
                 reason: Optional[str] = None):
        super().__init__(message)
        self.reply_code = reply_code
        self.reason = reason


class UnsupportedAddressType(Socks5Error):
    """不支持的地址类型或字段超长"""

    default_message = "不支持的地址类型"


class UnexpectedResponse(Socks5Error):
    """意外的代理应答"""

    default_message = "意外的应答"


class TransportError(Socks5Error):
    """
    传输层错误

    包装底层 I/O 异常（OSError、asyncio.IncompleteReadError 等）。

    Attributes:
        cause: 原始异常
    """

    default_message = "传输错误"

    def __init__(self, message: Optional[str] = None, cause: Optional[BaseException] = None):
        if message is None and cause is not None:
            message = f"传输错误: {cause}"
        super().__init__(message)
        self.cause = cause
