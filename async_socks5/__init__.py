"""
asyncio SOCKS5 客户端

通过 SOCKS5 代理（RFC 1928）建立 TCP 连接，支持用户名/密码认证（RFC 1929）
以及由代理解析域名。

使用示例：
    from async_socks5 import connect, connect_with_domain

    # 本地已解析的地址
    stream = await connect('127.0.0.1:9050', ('93.184.216.34', 80))

    # 由代理解析域名，带认证
    stream = await connect_with_domain('127.0.0.1:1080', 'example.com', 80,
                                       ('user', 'pass'))
    await stream.write(b'GET / HTTP/1.1\\r\\nHost: example.com\\r\\n\\r\\n')
    data = await stream.read(1024)
    stream.close()
"""

from .address import Credentials, TargetAddress
from .client import ConnectAttempt, ProxyStream, Socks5Client, connect, connect_with_domain
from .config import ProxyConfig, load_config, parse_proxy_url
from .errors import (
    Socks5Error,
    HandshakeFailed,
    AuthenticationFailed,
    ConnectionFailed,
    UnsupportedAddressType,
    UnexpectedResponse,
    TransportError,
)
from .handshake import authenticate, negotiate
from .protocol import SOCKS5, BoundAddress, ConnectState

__version__ = "0.1.0"

__all__ = [
    # 连接
    'connect',
    'connect_with_domain',
    'Socks5Client',
    'ConnectAttempt',
    'ProxyStream',

    # 数据类型
    'TargetAddress',
    'Credentials',
    'BoundAddress',
    'ConnectState',
    'SOCKS5',

    # 握手
    'negotiate',
    'authenticate',

    # 配置
    'ProxyConfig',
    'load_config',
    'parse_proxy_url',

    # 错误
    'Socks5Error',
    'HandshakeFailed',
    'AuthenticationFailed',
    'ConnectionFailed',
    'UnsupportedAddressType',
    'UnexpectedResponse',
    'TransportError',
]
