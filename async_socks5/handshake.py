"""
SOCKS5 客户端 - 握手模块

方法协商和用户名/密码认证子协商。

握手流程:
1. 发送方法协商请求（有凭据时声明 00 和 02，否则只声明 00）
2. 读取 2 字节应答：版本号、服务器选择的方法
3. 方法 00: 无需认证，握手完成
4. 方法 02: 执行用户名/密码子协商（RFC 1929）
5. 其他方法（包括 FF）: 握手失败

本模块不做任何重试。
"""

import asyncio
import logging
from typing import Optional

from .address import Credentials
from .errors import AuthenticationFailed, HandshakeFailed, UnexpectedResponse
from .protocol import SOCKS5, build_auth_request, build_greeting, read_exact, send

logger = logging.getLogger('async-socks5-handshake')


async def select_method(reader: asyncio.StreamReader, writer: asyncio.StreamWriter,
                        with_credentials: bool) -> int:
    """
    发送方法协商请求并读取服务器选择的方法

    Args:
        reader: 连接到代理的流读取器
        writer: 连接到代理的流写入器
        with_credentials: 是否声明用户名/密码方法

    Returns:
        int: AUTH_NONE 或 AUTH_USERNAME_PASSWORD

    Raises:
        UnexpectedResponse: 应答版本号不是 0x05
        HandshakeFailed: 服务器没有选择本客户端支持的方法
        AuthenticationFailed: 服务器选择了用户名/密码方法，但未提供凭据
        TransportError: 底层 I/O 错误
    """
    greeting = build_greeting(with_credentials)
    logger.debug(f"发送方法协商请求: {greeting.hex()}")
    await send(writer, greeting)

    version, method = await read_exact(reader, 2)
    logger.debug(f"收到方法协商应答: version={version:#04x}, method={method:#04x}")

    if version != SOCKS5.VERSION:
        raise UnexpectedResponse(f"协商应答版本号错误: {version:#04x}")

    if method == SOCKS5.AUTH_NONE:
        return method

    if method == SOCKS5.AUTH_USERNAME_PASSWORD:
        if not with_credentials:
            raise AuthenticationFailed("服务器要求用户名/密码认证，但未提供凭据")
        return method

    if method == SOCKS5.AUTH_NO_ACCEPTABLE:
        raise HandshakeFailed("服务器没有可接受的认证方法", method=method)
    raise HandshakeFailed(f"服务器选择了不支持的认证方法: {method:#04x}", method=method)


async def authenticate(reader: asyncio.StreamReader, writer: asyncio.StreamWriter,
                       credentials: Credentials, auth_request: Optional[bytes] = None):
    """
    执行用户名/密码认证子协商

    应答的版本字节不做校验，部分服务器会回 0x05 而不是 0x01。

    Args:
        credentials: 用户名/密码凭据
        auth_request: 预先构造好的认证请求，省略时由 credentials 构造

    Raises:
        UnsupportedAddressType: 用户名或密码超过 255 字节（在发送任何字节之前）
        AuthenticationFailed: 认证状态非零
        TransportError: 底层 I/O 错误
    """
    if auth_request is None:
        auth_request = build_auth_request(Credentials.coerce(credentials))
    logger.debug(f"发送认证请求: {len(auth_request)} 字节")
    await send(writer, auth_request)

    _, status = await read_exact(reader, 2)
    if status != SOCKS5.AUTH_SUCCESS:
        raise AuthenticationFailed(f"认证被拒绝: status={status:#04x}", status=status)
    logger.debug("认证成功")


async def negotiate(reader: asyncio.StreamReader, writer: asyncio.StreamWriter,
                    credentials: Optional[Credentials] = None) -> int:
    """
    执行方法协商，服务器选择用户名/密码方法时继续认证子协商

    Args:
        credentials: 用户名/密码凭据或 (username, password) 元组（可选）

    Returns:
        int: 服务器选择的认证方法
    """
    credentials = Credentials.coerce(credentials)
    auth_request = build_auth_request(credentials) if credentials is not None else None

    method = await select_method(reader, writer, credentials is not None)
    if method == SOCKS5.AUTH_USERNAME_PASSWORD:
        await authenticate(reader, writer, credentials, auth_request)
    return method
