"""
SOCKS5 客户端 - 地址编码模块

本模块负责把目标地址（IPv4、IPv6 或域名 + 端口）转换为 CONNECT 请求中的
线路格式，并按同样的长度规则编码用户名/密码凭据。

线路格式:
┌──────────┬──────────────────────────┬────────────┐
│ ATYP     │ DST.ADDR                 │ DST.PORT   │
│ 1 字节   │ 4 / 16 / 1+N 字节        │ 2 字节     │
└──────────┴──────────────────────────┴────────────┘

域名和凭据字段都带 1 字节长度前缀，因此长度必须在 0-255 之间。
超长输入抛出 UnsupportedAddressType，绝不截断。
"""

import ipaddress
import struct
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple, Union

from .errors import UnsupportedAddressType

ATYP_IPV4 = 0x01
ATYP_DOMAIN = 0x03
ATYP_IPV6 = 0x04

MAX_FIELD_LENGTH = 255


def _check_port(port) -> int:
    if isinstance(port, bool) or not isinstance(port, int) or not 0 <= port <= 0xFFFF:
        raise UnsupportedAddressType(f"端口非法: {port!r}")
    return port


def _check_length(name: str, value: bytes) -> bytes:
    if len(value) > MAX_FIELD_LENGTH:
        raise UnsupportedAddressType(
            f"{name} 长度 {len(value)} 字节超过 {MAX_FIELD_LENGTH} 字节上限"
        )
    return value


def _check_bytes(name: str, value) -> bytes:
    if isinstance(value, str):
        return value.encode('utf-8')
    if not isinstance(value, (bytes, bytearray)):
        raise UnsupportedAddressType(f"{name} 必须是 str 或 bytes: {type(value).__name__}")
    return bytes(value)


@dataclass(frozen=True)
class TargetAddress:
    """
    CONNECT 请求的目标地址

    Attributes:
        atyp: 地址类型（0x01 IPv4, 0x03 域名, 0x04 IPv6）
        address: 地址字节（IPv4 4 字节，IPv6 16 字节，域名为原始名称字节）
        port: 目标端口（0-65535）

    Example:
        >>> TargetAddress.from_domain('example.com', 443).encode().hex()
        '030b6578616d706c652e636f6d01bb'
    """
    atyp: int
    address: bytes
    port: int

    @classmethod
    def from_ip(cls, ip: Union[str, ipaddress.IPv4Address, ipaddress.IPv6Address],
                port: int) -> 'TargetAddress':
        """
        由 IP 地址创建目标地址，根据地址族选择 ATYP

        Raises:
            UnsupportedAddressType: ip 不是合法的 IP 字面量，或端口非法
        """
        try:
            addr = ipaddress.ip_address(ip)
        except ValueError:
            raise UnsupportedAddressType(
                f"不是 IP 地址: {ip!r}，域名请使用 connect_with_domain"
            ) from None
        atyp = ATYP_IPV4 if addr.version == 4 else ATYP_IPV6
        return cls(atyp, addr.packed, _check_port(port))

    @classmethod
    def from_domain(cls, name: Union[str, bytes], port: int) -> 'TargetAddress':
        """
        由域名创建目标地址，域名交给代理解析

        非 ASCII 的 str 域名使用 IDNA 编码，bytes 原样使用。

        Raises:
            UnsupportedAddressType: 域名不是 str / bytes、编码后超过 255 字节或无法编码，或端口非法
        """
        if isinstance(name, str):
            try:
                name = name.encode('ascii')
            except UnicodeEncodeError:
                try:
                    name = name.encode('idna')
                except UnicodeError as e:
                    raise UnsupportedAddressType(f"域名无法编码: {e}") from None
        elif not isinstance(name, (bytes, bytearray)):
            raise UnsupportedAddressType(f"域名必须是 str 或 bytes: {type(name).__name__}")
        return cls(ATYP_DOMAIN, _check_length("域名", bytes(name)), _check_port(port))

    @classmethod
    def from_socket_address(cls, sockaddr: Sequence) -> 'TargetAddress':
        """
        由套接字地址元组创建目标地址

        支持 (host, port) 以及 getaddrinfo 返回的 IPv6 四元组
        (host, port, flowinfo, scope_id)。
        """
        if isinstance(sockaddr, TargetAddress):
            return sockaddr
        if not isinstance(sockaddr, (tuple, list)) or len(sockaddr) not in (2, 4):
            raise UnsupportedAddressType(f"无法识别的套接字地址: {sockaddr!r}")
        return cls.from_ip(sockaddr[0], sockaddr[1])

    @property
    def host(self) -> str:
        """地址的文本形式"""
        if self.atyp == ATYP_DOMAIN:
            return self.address.decode('utf-8', errors='replace')
        return str(ipaddress.ip_address(self.address))

    def encode(self) -> bytes:
        """
        编码为 ATYP + DST.ADDR + DST.PORT

        Returns:
            bytes: 线路格式的地址字节
        """
        if self.atyp == ATYP_DOMAIN:
            body = bytes([ATYP_DOMAIN, len(self.address)]) + self.address
        elif self.atyp in (ATYP_IPV4, ATYP_IPV6):
            body = bytes([self.atyp]) + self.address
        else:
            raise UnsupportedAddressType(f"未知地址类型: {self.atyp:#04x}")
        return body + struct.pack('>H', self.port)

    def __str__(self):
        if self.atyp == ATYP_IPV6:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class Credentials:
    """
    用户名/密码凭据（RFC 1929）

    Attributes:
        username: 用户名，str 按 UTF-8 编码
        password: 密码，str 按 UTF-8 编码，不出现在 repr 中
    """
    username: Union[str, bytes]
    password: Union[str, bytes] = field(repr=False)

    @classmethod
    def coerce(cls, value) -> Optional['Credentials']:
        """
        把 None、Credentials 或 (username, password) 元组统一为 Credentials
        """
        if value is None or isinstance(value, Credentials):
            return value
        if isinstance(value, (tuple, list)) and len(value) == 2:
            return cls(value[0], value[1])
        raise TypeError(f"凭据必须是 (username, password) 元组: {type(value).__name__}")

    def encode(self) -> Tuple[bytes, bytes]:
        """
        编码用户名和密码

        Raises:
            UnsupportedAddressType: 任一字段超过 255 字节，或不是 str / bytes
        """
        username = _check_bytes("用户名", self.username)
        password = _check_bytes("密码", self.password)
        return _check_length("用户名", username), _check_length("密码", password)
