"""
SOCKS5 客户端 - 线路协议模块

本模块定义了 SOCKS5 协议常量、连接状态枚举、请求构造函数和应答解析函数。

协议流程（RFC 1928 / RFC 1929）:
1. 方法协商:   客户端 05 N METHODS...      服务器 05 METHOD
2. 认证子协商: 客户端 01 ULEN UNAME PLEN PASSWD   服务器 VER STATUS
3. 连接请求:   客户端 05 01 00 ATYP DST.ADDR DST.PORT
4. 连接应答:   服务器 VER REP 00 ATYP BND.ADDR BND.PORT

连接应答的长度取决于 ATYP，因此分两阶段读取：先读 4 字节头部，
再按地址类型读取 4 / 16 / 1+N 字节地址和 2 字节端口。

所有多字节字段使用大端序（网络字节序）。
"""

import asyncio
import ipaddress
import logging
import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

from .address import ATYP_DOMAIN, ATYP_IPV4, ATYP_IPV6, Credentials, TargetAddress
from .errors import ConnectionFailed, TransportError, UnexpectedResponse

logger = logging.getLogger('async-socks5-protocol')


# ============================================================================
# SOCKS5 协议常量
# ============================================================================

class SOCKS5:
    """
    SOCKS5 协议常量定义

    本实现只支持 CONNECT 命令，认证方法只支持无认证和用户名/密码。
    """
    VERSION = 0x05
    AUTH_NONE = 0x00
    AUTH_USERNAME_PASSWORD = 0x02
    AUTH_NO_ACCEPTABLE = 0xFF
    AUTH_VERSION = 0x01
    AUTH_SUCCESS = 0x00
    CMD_CONNECT = 0x01
    RESERVED = 0x00
    ATYP_IPV4 = ATYP_IPV4
    ATYP_DOMAIN = ATYP_DOMAIN
    ATYP_IPV6 = ATYP_IPV6
    REP_SUCCESS = 0x00


REPLY_MESSAGES = {
    0x01: "SOCKS 服务器一般性故障",
    0x02: "规则集不允许连接",
    0x03: "网络不可达",
    0x04: "主机不可达",
    0x05: "连接被拒绝",
    0x06: "TTL 过期",
    0x07: "不支持的命令",
    0x08: "不支持的地址类型",
}

REPLY_HEADER_SIZE = 4

# 各地址类型的固定地址长度，域名长度由后续 1 字节给出
ADDRESS_SIZES = {
    ATYP_IPV4: 4,
    ATYP_IPV6: 16,
}


class ConnectState(IntEnum):
    """
    连接尝试的状态

    状态只能前进:
    DISCONNECTED → TRANSPORT_OPEN → NEGOTIATED → [AUTHENTICATED]
    → REQUEST_SENT → ESTABLISHED | FAILED
    """
    DISCONNECTED = 0
    TRANSPORT_OPEN = 1
    NEGOTIATED = 2
    AUTHENTICATED = 3
    REQUEST_SENT = 4
    ESTABLISHED = 5
    FAILED = 6


@dataclass(frozen=True)
class BoundAddress:
    """
    CONNECT 应答中代理报告的绑定地址

    Attributes:
        atyp: 地址类型
        host: 文本形式的 IP 地址或域名
        port: 绑定端口
    """
    atyp: int
    host: str
    port: int


# ============================================================================
# 请求构造
# ============================================================================

def build_greeting(with_credentials: bool) -> bytes:
    """
    构造方法协商请求

    Args:
        with_credentials: 是否提供凭据，提供时额外声明用户名/密码方法

    Returns:
        bytes: 05 01 00 或 05 02 00 02
    """
    methods = [SOCKS5.AUTH_NONE]
    if with_credentials:
        methods.append(SOCKS5.AUTH_USERNAME_PASSWORD)
    return bytes([SOCKS5.VERSION, len(methods)] + methods)


def build_auth_request(credentials: Credentials) -> bytes:
    """
    构造用户名/密码认证请求

    Raises:
        UnsupportedAddressType: 用户名或密码超过 255 字节
    """
    username, password = credentials.encode()
    return (bytes([SOCKS5.AUTH_VERSION, len(username)]) + username
            + bytes([len(password)]) + password)


def build_connect_request(target: TargetAddress) -> bytes:
    """
    构造 CONNECT 请求

    Returns:
        bytes: 05 01 00 ATYP DST.ADDR DST.PORT
    """
    return bytes([SOCKS5.VERSION, SOCKS5.CMD_CONNECT, SOCKS5.RESERVED]) + target.encode()


# ============================================================================
# 流读写
# ============================================================================

async def read_exact(reader: asyncio.StreamReader, size: int) -> bytes:
    """
    精确读取 size 字节

    在读满之前遇到 EOF 不视为成功。

    Raises:
        TransportError: 连接提前关闭或底层 I/O 错误
    """
    try:
        return await reader.readexactly(size)
    except asyncio.IncompleteReadError as e:
        raise TransportError(
            f"连接提前关闭: 期望 {size} 字节，只收到 {len(e.partial)} 字节", cause=e
        ) from e
    except OSError as e:
        raise TransportError(cause=e) from e


async def send(writer: asyncio.StreamWriter, data: bytes):
    """
    写入数据并等待缓冲区排空

    Raises:
        TransportError: 底层 I/O 错误
    """
    try:
        writer.write(data)
        await writer.drain()
    except OSError as e:
        raise TransportError(cause=e) from e


# ============================================================================
# 应答解析
# ============================================================================

async def read_reply(reader: asyncio.StreamReader) -> BoundAddress:
    """
    读取并解析 CONNECT 应答

    两阶段读取:
    1. 固定 4 字节头部（VER, REP, RSV, ATYP）
    2. 按 ATYP 读取地址（IPv4 4 字节，IPv6 16 字节，域名 1+N 字节）和 2 字节端口

    应答码非零时仍会读完应答体再抛出异常，使流停在帧边界上；
    地址类型未知时无法确定应答长度，不再读取，直接按应答码抛出异常。

    Returns:
        BoundAddress: 代理报告的绑定地址

    Raises:
        UnexpectedResponse: 版本号不是 0x05，或地址类型未知
        ConnectionFailed: 应答码非零
        TransportError: 连接提前关闭
    """
    version, status, _, atyp = await read_exact(reader, REPLY_HEADER_SIZE)
    logger.debug(f"收到应答头部: version={version:#04x}, status={status:#04x}, atyp={atyp:#04x}")

    if version != SOCKS5.VERSION:
        raise UnexpectedResponse(f"应答版本号错误: {version:#04x}")

    bound = await _read_bound_address(reader, atyp)

    if status != SOCKS5.REP_SUCCESS:
        reason = REPLY_MESSAGES.get(status, f"未知应答码 {status:#04x}")
        raise ConnectionFailed(f"连接失败: {reason}", reply_code=status, reason=reason)

    if bound is None:
        raise UnexpectedResponse(f"应答中的地址类型未知: {atyp:#04x}")
    return bound


async def _read_bound_address(reader: asyncio.StreamReader, atyp: int) -> Optional[BoundAddress]:
    """
    读取 BND.ADDR 和 BND.PORT

    地址类型未知时无法确定应答长度，返回 None 且不再读取。
    """
    if atyp in ADDRESS_SIZES:
        data = await read_exact(reader, ADDRESS_SIZES[atyp] + 2)
        host = str(ipaddress.ip_address(data[:-2]))
    elif atyp == ATYP_DOMAIN:
        length = (await read_exact(reader, 1))[0]
        data = await read_exact(reader, length + 2)
        host = data[:-2].decode('utf-8', errors='replace')
    else:
        return None

    port = struct.unpack('>H', data[-2:])[0]
    return BoundAddress(atyp, host, port)
