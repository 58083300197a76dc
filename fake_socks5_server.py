#!/usr/bin/env python3
"""
脚本化的 SOCKS5 测试服务器

按预设的应答完成握手，记录客户端发来的每个请求，
CONNECT 成功后把收到的数据原样回显。

使用方法:
    async with FakeSocks5Server(method=0x02) as proxy:
        stream = await connect_with_domain(proxy.address, 'example.com', 80, ('u', 'p'))
        ...
    assert proxy.auth_request == b'\\x01\\x01u\\x01p'
"""

import asyncio
import logging
import struct
from typing import Optional

logger = logging.getLogger('fake-socks5-server')

SUCCESS_REPLY_IPV4 = bytes([0x05, 0x00, 0x00, 0x01, 10, 0, 0, 1]) + struct.pack('>H', 40000)


def make_reply(status: int = 0x00, atyp: int = 0x01, address: bytes = b'\x00\x00\x00\x00',
               port: int = 0) -> bytes:
    """构造 CONNECT 应答，域名类型时 address 不含长度前缀"""
    if atyp == 0x03:
        address = bytes([len(address)]) + address
    return bytes([0x05, status, 0x00, atyp]) + address + struct.pack('>H', port)


class FakeSocks5Server:
    """
    脚本化的 SOCKS5 服务器

    Attributes:
        method: 协商应答中选择的方法
        auth_status: 认证应答状态
        reply: CONNECT 应答字节
        greeting_reply: 覆盖整个协商应答（可选）
        echo: CONNECT 成功后是否回显数据，为 False 时发完应答即关闭
        connections: 已接受的连接数
        greeting / auth_request / connect_request: 最近一次收到的各阶段请求
    """

    def __init__(self, method: int = 0x00, auth_status: int = 0x00,
                 reply: bytes = SUCCESS_REPLY_IPV4, greeting_reply: Optional[bytes] = None,
                 echo: bool = True):
        self.method = method
        self.echo = echo
        self.auth_status = auth_status
        self.reply = reply
        self.greeting_reply = greeting_reply
        self.connections = 0
        self.greeting = None
        self.auth_request = None
        self.connect_request = None
        self.server = None

    @property
    def address(self) -> str:
        host, port = self.server.sockets[0].getsockname()[:2]
        return f"{host}:{port}"

    async def start(self):
        self.server = await asyncio.start_server(self.handle_client, '127.0.0.1', 0)

    async def close(self):
        self.server.close()
        await self.server.wait_closed()

    async def __aenter__(self) -> 'FakeSocks5Server':
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self.connections += 1
        try:
            head = await reader.readexactly(2)
            self.greeting = head + await reader.readexactly(head[1])

            writer.write(self.greeting_reply or bytes([0x05, self.method]))
            await writer.drain()
            if self.greeting_reply or self.method not in (0x00, 0x02):
                return

            if self.method == 0x02:
                version, ulen = await reader.readexactly(2)
                username = await reader.readexactly(ulen)
                plen = (await reader.readexactly(1))[0]
                password = await reader.readexactly(plen)
                self.auth_request = bytes([version, ulen]) + username + bytes([plen]) + password
                writer.write(bytes([0x01, self.auth_status]))
                await writer.drain()
                if self.auth_status != 0x00:
                    return

            header = await reader.readexactly(4)
            atyp = header[3]
            if atyp == 0x01:
                address = await reader.readexactly(4)
            elif atyp == 0x04:
                address = await reader.readexactly(16)
            else:
                length = await reader.readexactly(1)
                address = length + await reader.readexactly(length[0])
            self.connect_request = header + address + await reader.readexactly(2)

            writer.write(self.reply)
            await writer.drain()
            if not self.echo or self.reply[1:2] != b'\x00':
                return

            while True:
                data = await reader.read(4096)
                if not data:
                    break
                writer.write(data)
                await writer.drain()
        except (asyncio.IncompleteReadError, ConnectionError) as e:
            logger.debug(f"客户端提前断开: {e}")
        finally:
            writer.close()
