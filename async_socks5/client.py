"""
SOCKS5 客户端 - 连接模块

本模块通过 SOCKS5 代理建立到目标主机的 TCP 连接。

连接流程:
1. 编码目标地址和凭据（超长字段在打开连接之前失败）
2. 建立到代理的 TCP 连接
3. 方法协商（必要时进行用户名/密码认证）
4. 发送 CONNECT 请求
5. 两阶段读取并解析 CONNECT 应答
6. 返回 ProxyStream，连接的所有权转交给调用方

状态机:
    DISCONNECTED → TRANSPORT_OPEN → NEGOTIATED → [AUTHENTICATED]
    → REQUEST_SENT → ESTABLISHED | FAILED

任何一步失败都会关闭已打开的连接并抛出 Socks5Error，不做重试，
也没有内置超时；需要限时的调用方请使用 asyncio.wait_for。
"""

import asyncio
import ipaddress
import logging
import socket
from dataclasses import dataclass
from typing import Optional, Sequence, Union

from .address import Credentials, TargetAddress
from .config import ProxyConfig, parse_proxy_url, split_host_port
from .errors import Socks5Error, TransportError
from .handshake import authenticate, select_method
from .protocol import (
    SOCKS5, BoundAddress, ConnectState,
    build_auth_request, build_connect_request, read_reply, send
)

logger = logging.getLogger('async-socks5-client')


# ============================================================================
# 已建立的连接
# ============================================================================

@dataclass
class ProxyStream:
    """
    通过代理建立的 TCP 连接

    由调用方负责关闭。支持 async with，退出时自动关闭。

    Attributes:
        reader: 异步流读取器
        writer: 异步流写入器
        proxy_address: 代理地址
        target: 请求的目标地址
        bound: 代理报告的绑定地址
    """
    reader: asyncio.StreamReader
    writer: asyncio.StreamWriter
    proxy_address: str
    target: TargetAddress
    bound: BoundAddress

    async def read(self, n: int = -1) -> bytes:
        return await self.reader.read(n)

    async def readexactly(self, n: int) -> bytes:
        return await self.reader.readexactly(n)

    async def write(self, data: bytes):
        """写入数据并等待缓冲区排空"""
        self.writer.write(data)
        await self.writer.drain()

    def close(self):
        self.writer.close()

    async def wait_closed(self):
        await self.writer.wait_closed()

    async def __aenter__(self) -> 'ProxyStream':
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.close()
        try:
            await self.wait_closed()
        except OSError as e:
            logger.debug(f"关闭连接时出错: {e}")


# ============================================================================
# 单次连接尝试
# ============================================================================

class ConnectAttempt:
    """
    一次连接尝试

    按顺序执行握手和 CONNECT 请求，记录当前状态。状态只能前进，
    失败时把当前状态写入异常的 state 属性。

    Attributes:
        proxy_address: 代理地址（host:port）
        target: 目标地址
        credentials: 凭据（可选）
        state: 当前状态
    """

    def __init__(self, proxy_address: str, target: TargetAddress,
                 credentials: Optional[Credentials] = None):
        self.proxy_address = proxy_address
        self.target = target
        self.credentials = Credentials.coerce(credentials)
        self.state = ConnectState.DISCONNECTED

        # 先编码，超长字段在打开连接之前就失败
        self.request = build_connect_request(target)
        self.auth_request = (build_auth_request(self.credentials)
                             if self.credentials is not None else None)

    def _advance(self, state: ConnectState):
        if state <= self.state:
            raise RuntimeError(f"状态不能回退: {self.state.name} -> {state.name}")
        logger.debug(f"[{self.proxy_address} -> {self.target}] {self.state.name} -> {state.name}")
        self.state = state

    async def _open_transport(self):
        try:
            host, port = split_host_port(self.proxy_address)
        except ValueError as e:
            raise TransportError(f"代理地址无效: {e}", cause=e) from e
        try:
            return await asyncio.open_connection(host, port)
        except OSError as e:
            raise TransportError(f"无法连接到代理 {self.proxy_address}: {e}", cause=e) from e

    async def run(self) -> ProxyStream:
        """
        执行连接尝试

        Returns:
            ProxyStream: 已建立的连接

        Raises:
            Socks5Error: 任一阶段失败
        """
        writer = None
        try:
            reader, writer = await self._open_transport()
            self._advance(ConnectState.TRANSPORT_OPEN)

            method = await select_method(reader, writer, self.credentials is not None)
            self._advance(ConnectState.NEGOTIATED)

            if method == SOCKS5.AUTH_USERNAME_PASSWORD:
                await authenticate(reader, writer, self.credentials, self.auth_request)
                self._advance(ConnectState.AUTHENTICATED)

            await send(writer, self.request)
            self._advance(ConnectState.REQUEST_SENT)

            bound = await read_reply(reader)
            self._advance(ConnectState.ESTABLISHED)
        except Socks5Error as e:
            e.state = self.state
            self.state = ConnectState.FAILED
            logger.warning(f"经 {self.proxy_address} 连接 {self.target} 失败 "
                           f"({e.state.name}): {e}")
            if writer is not None:
                writer.close()
            raise
        except BaseException:
            # 取消等情况下丢弃未完成的连接
            self.state = ConnectState.FAILED
            if writer is not None:
                writer.close()
            raise

        logger.info(f"已经 {self.proxy_address} 连接到 {self.target}，"
                    f"绑定地址 {bound.host}:{bound.port}")
        return ProxyStream(reader, writer, self.proxy_address, self.target, bound)


# ============================================================================
# 客户端
# ============================================================================

def _is_ip_literal(host: str) -> bool:
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return False
    return True


class Socks5Client:
    """
    SOCKS5 客户端

    描述一个代理及其凭据，不保存任何连接状态，可被多个协程并发使用。

    Attributes:
        proxy_address: 代理地址（host:port）
        credentials: 凭据（可选）
        remote_dns: open_connection 遇到域名时是否交给代理解析

    Example:
        >>> client = Socks5Client('127.0.0.1:9050')
        >>> stream = await client.connect_with_domain('icanhazip.com', 80)
        >>> await stream.write(b'GET / HTTP/1.1\\r\\nHost: icanhazip.com\\r\\n\\r\\n')
    """

    def __init__(self, proxy_address: str,
                 credentials: Union[Credentials, Sequence, None] = None,
                 remote_dns: bool = True):
        self.proxy_address = proxy_address
        self.credentials = Credentials.coerce(credentials)
        self.remote_dns = remote_dns

    @classmethod
    def from_config(cls, config: ProxyConfig) -> 'Socks5Client':
        return cls(config.proxy_address, config.credentials, config.remote_dns)

    @classmethod
    def from_url(cls, url: str) -> 'Socks5Client':
        """由 socks5:// 或 socks5h:// URL 创建客户端"""
        return cls.from_config(parse_proxy_url(url))

    async def connect(self, target_address: Union[TargetAddress, Sequence]) -> ProxyStream:
        """
        通过代理连接到已解析的地址

        Args:
            target_address: (ip, port) 元组、getaddrinfo 的 IPv6 四元组或 TargetAddress

        Raises:
            UnsupportedAddressType: 地址不是 IP 字面量、端口非法或凭据超长
            HandshakeFailed, AuthenticationFailed, ConnectionFailed,
            UnexpectedResponse, TransportError: 见 ConnectAttempt.run
        """
        target = TargetAddress.from_socket_address(target_address)
        return await ConnectAttempt(self.proxy_address, target, self.credentials).run()

    async def connect_with_domain(self, domain_name: Union[str, bytes], port: int) -> ProxyStream:
        """
        通过代理连接到域名，域名由代理解析

        Raises:
            UnsupportedAddressType: 域名超过 255 字节、端口非法或凭据超长
        """
        target = TargetAddress.from_domain(domain_name, port)
        return await ConnectAttempt(self.proxy_address, target, self.credentials).run()

    async def open_connection(self, host: str, port: int) -> ProxyStream:
        """
        按主机类型选择连接方式

        IP 字面量直接连接；域名在 remote_dns 为 True 时交给代理解析，
        否则本地解析后使用第一个结果。

        Raises:
            TransportError: 本地域名解析失败
        """
        if _is_ip_literal(host):
            return await self.connect((host, port))
        if self.remote_dns:
            return await self.connect_with_domain(host, port)

        loop = asyncio.get_running_loop()
        try:
            infos = await loop.getaddrinfo(host, port, type=socket.SOCK_STREAM)
        except OSError as e:
            raise TransportError(f"无法解析 {host}: {e}", cause=e) from e
        if not infos:
            raise TransportError(f"无法解析 {host}: 没有地址")
        sockaddr = infos[0][4]
        logger.debug(f"本地解析 {host} -> {sockaddr[0]}")
        return await self.connect((sockaddr[0], port))


# ============================================================================
# 便捷函数
# ============================================================================

async def connect(proxy_address: str, target_address: Union[TargetAddress, Sequence],
                  credentials: Union[Credentials, Sequence, None] = None) -> ProxyStream:
    """
    通过 SOCKS5 代理连接到已解析的地址

    Args:
        proxy_address: 代理地址（host:port）
        target_address: (ip, port) 元组或 TargetAddress
        credentials: (username, password) 元组或 Credentials（可选）

    Returns:
        ProxyStream: 已建立的连接，由调用方负责关闭
    """
    return await Socks5Client(proxy_address, credentials).connect(target_address)


async def connect_with_domain(proxy_address: str, domain_name: Union[str, bytes], port: int,
                              credentials: Union[Credentials, Sequence, None] = None) -> ProxyStream:
    """
    通过 SOCKS5 代理连接到域名，DNS 解析在代理端进行

    Args:
        proxy_address: 代理地址（host:port）
        domain_name: 目标域名（编码后不超过 255 字节）
        port: 目标端口
        credentials: (username, password) 元组或 Credentials（可选）

    Returns:
        ProxyStream: 已建立的连接，由调用方负责关闭
    """
    return await Socks5Client(proxy_address, credentials).connect_with_domain(domain_name, port)
