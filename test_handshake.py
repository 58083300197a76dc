#!/usr/bin/env python3
"""
测试方法协商和认证子协商

测试内容:
1. 无凭据 / 有凭据时的协商请求
2. 服务器选择 00 / 02 / FF 及未知方法
3. 认证成功与失败
4. 超长凭据在发送任何字节之前失败
"""

import asyncio
import sys

import pytest

from async_socks5 import (
    SOCKS5, AuthenticationFailed, Credentials, HandshakeFailed, TransportError,
    UnexpectedResponse, UnsupportedAddressType, authenticate, negotiate
)


class RecordingWriter:
    """记录写入数据的 StreamWriter 替身"""

    def __init__(self):
        self.data = bytearray()
        self.closed = False

    def write(self, data: bytes):
        self.data.extend(data)

    async def drain(self):
        pass

    def close(self):
        self.closed = True


class BrokenWriter(RecordingWriter):
    async def drain(self):
        raise ConnectionResetError("连接被重置")


def make_reader(data: bytes) -> asyncio.StreamReader:
    reader = asyncio.StreamReader()
    reader.feed_data(data)
    reader.feed_eof()
    return reader


async def test_no_auth():
    """测试无凭据、服务器选择无认证"""
    writer = RecordingWriter()
    method = await negotiate(make_reader(b'\x05\x00'), writer)
    assert method == SOCKS5.AUTH_NONE
    assert bytes(writer.data) == b'\x05\x01\x00'


async def test_credentials_but_no_auth_selected():
    """测试提供凭据但服务器选择无认证，不发送认证请求"""
    writer = RecordingWriter()
    method = await negotiate(make_reader(b'\x05\x00'), writer, ('user', 'pass'))
    assert method == SOCKS5.AUTH_NONE
    assert bytes(writer.data) == b'\x05\x02\x00\x02'


async def test_username_password_success():
    """测试用户名/密码认证成功"""
    writer = RecordingWriter()
    reader = make_reader(b'\x05\x02' + b'\x01\x00')

    method = await negotiate(reader, writer, Credentials('user', 'pass'))

    assert method == SOCKS5.AUTH_USERNAME_PASSWORD
    assert bytes(writer.data) == b'\x05\x02\x00\x02' + b'\x01\x04user\x04pass'


async def test_username_password_rejected():
    """测试认证状态非零"""
    with pytest.raises(AuthenticationFailed) as excinfo:
        await negotiate(make_reader(b'\x05\x02\x01\x01'), RecordingWriter(), ('user', 'bad'))
    assert excinfo.value.status == 0x01


async def test_auth_reply_version_not_checked():
    """测试认证应答版本字节为 0x05 时仍按状态判断"""
    await authenticate(make_reader(b'\x05\x00'), RecordingWriter(), Credentials('u', 'p'))


async def test_auth_selected_without_credentials():
    """测试服务器要求认证但未提供凭据"""
    with pytest.raises(AuthenticationFailed) as excinfo:
        await negotiate(make_reader(b'\x05\x02'), RecordingWriter())
    assert excinfo.value.status is None


async def test_no_acceptable_method():
    """测试服务器返回 FF"""
    with pytest.raises(HandshakeFailed) as excinfo:
        await negotiate(make_reader(b'\x05\xff'), RecordingWriter())
    assert excinfo.value.method == 0xFF


async def test_unsupported_method():
    """测试服务器选择 GSSAPI 等未声明的方法"""
    with pytest.raises(HandshakeFailed) as excinfo:
        await negotiate(make_reader(b'\x05\x01'), RecordingWriter(), ('user', 'pass'))
    assert excinfo.value.method == 0x01


async def test_wrong_version():
    """测试协商应答版本号错误"""
    with pytest.raises(UnexpectedResponse):
        await negotiate(make_reader(b'\x04\x00'), RecordingWriter())


async def test_short_greeting_reply():
    """测试协商应答不足 2 字节"""
    with pytest.raises(TransportError) as excinfo:
        await negotiate(make_reader(b'\x05'), RecordingWriter())
    assert isinstance(excinfo.value.cause, asyncio.IncompleteReadError)


async def test_write_failure():
    """测试写入失败被包装为 TransportError"""
    with pytest.raises(TransportError) as excinfo:
        await negotiate(make_reader(b''), BrokenWriter())
    assert isinstance(excinfo.value.cause, ConnectionResetError)


async def test_oversized_credentials_send_nothing():
    """测试超长凭据在发送任何字节之前失败"""
    writer = RecordingWriter()
    with pytest.raises(UnsupportedAddressType):
        await negotiate(make_reader(b'\x05\x02\x01\x00'), writer, ('u' * 256, 'pass'))
    assert bytes(writer.data) == b''


async def main():
    """运行所有测试"""
    tests = [value for name, value in sorted(globals().items())
             if name.startswith('test_') and callable(value)]
    failed = 0
    for test_func in tests:
        try:
            await test_func()
            print(f"✓ {test_func.__name__}")
        except Exception as e:
            print(f"✗ {test_func.__name__}: {e!r}")
            failed += 1
    print(f"测试结果: 通过={len(tests) - failed}, 失败={failed}")
    return failed == 0


if __name__ == '__main__':
    sys.exit(0 if asyncio.run(main()) else 1)
