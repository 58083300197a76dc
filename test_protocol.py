#!/usr/bin/env python3
"""
测试 SOCKS5 线路协议

测试内容:
1. 方法协商请求和认证请求的字节格式
2. CONNECT 请求（IPv4 / IPv6 / 域名）的字节格式
3. 域名、凭据和端口的长度校验
4. CONNECT 应答的两阶段解析（IPv4 / IPv6 / 域名 / 失败 / 截断）
"""

import asyncio
import sys

import pytest

from async_socks5 import (
    ConnectionFailed, Credentials, TargetAddress, TransportError,
    UnexpectedResponse, UnsupportedAddressType
)
from async_socks5.protocol import (
    BoundAddress, build_auth_request, build_connect_request, build_greeting, read_reply
)
from fake_socks5_server import make_reply


def make_reader(data: bytes) -> asyncio.StreamReader:
    reader = asyncio.StreamReader()
    reader.feed_data(data)
    reader.feed_eof()
    return reader


def test_greeting():
    """测试方法协商请求"""
    assert build_greeting(False) == bytes.fromhex('050100')
    assert build_greeting(True) == bytes.fromhex('05020002')


def test_auth_request():
    """测试认证请求"""
    request = build_auth_request(Credentials('user', 'pass'))
    assert request == b'\x01\x04user\x04pass'

    request = build_auth_request(Credentials(b'', 'пароль'))
    assert request == b'\x01\x00\x0c' + 'пароль'.encode('utf-8')


def test_ipv4_connect_request():
    """测试 IPv4 CONNECT 请求: 05 01 00 01 A B C D Phi Plo"""
    for ip, port in [('192.168.1.10', 8080), ('0.0.0.0', 0), ('255.255.255.255', 65535)]:
        expected = bytes([0x05, 0x01, 0x00, 0x01]) + bytes(int(b) for b in ip.split('.'))
        expected += bytes([port >> 8, port & 0xFF])
        assert build_connect_request(TargetAddress.from_ip(ip, port)) == expected


def test_ipv6_connect_request():
    """测试 IPv6 CONNECT 请求"""
    target = TargetAddress.from_socket_address(('2001:db8::1', 443, 0, 0))
    request = build_connect_request(target)
    assert request[:4] == bytes([0x05, 0x01, 0x00, 0x04])
    assert request[4:20] == bytes.fromhex('20010db8000000000000000000000001')
    assert request[20:] == b'\x01\xbb'
    assert str(target) == '[2001:db8::1]:443'


def test_domain_connect_request():
    """测试域名 CONNECT 请求"""
    request = build_connect_request(TargetAddress.from_domain('example.com', 443))
    assert request == bytes.fromhex('050100030b6578616d706c652e636f6d01bb')


def test_idna_domain():
    """测试非 ASCII 域名使用 IDNA 编码"""
    target = TargetAddress.from_domain('bücher.example', 80)
    assert target.address == b'xn--bcher-kva.example'


def test_domain_length_limit():
    """测试域名长度上限: 255 字节可以，256 字节必须被拒绝"""
    target = TargetAddress.from_domain('a' * 255, 80)
    assert build_connect_request(target)[4] == 255

    with pytest.raises(UnsupportedAddressType):
        TargetAddress.from_domain('a' * 256, 80)
    with pytest.raises(UnsupportedAddressType):
        TargetAddress.from_domain(b'a' * 300, 80)


def test_credentials_length_limit():
    """测试凭据长度上限"""
    with pytest.raises(UnsupportedAddressType):
        build_auth_request(Credentials('u' * 256, 'p'))
    with pytest.raises(UnsupportedAddressType):
        build_auth_request(Credentials('u', 'p' * 256))
    # 多字节字符按编码后的字节数计算
    with pytest.raises(UnsupportedAddressType):
        build_auth_request(Credentials('ж' * 128, 'p'))


def test_invalid_targets():
    """测试非法的目标地址"""
    with pytest.raises(UnsupportedAddressType):
        TargetAddress.from_socket_address(('example.com', 80))
    with pytest.raises(UnsupportedAddressType):
        TargetAddress.from_ip('10.0.0.1', 70000)
    with pytest.raises(UnsupportedAddressType):
        TargetAddress.from_domain('example.com', -1)
    with pytest.raises(UnsupportedAddressType):
        TargetAddress.from_socket_address(('10.0.0.1',))


def test_bool_port_rejected():
    """测试 bool 不能作为端口"""
    with pytest.raises(UnsupportedAddressType):
        TargetAddress.from_ip('1.2.3.4', True)
    with pytest.raises(UnsupportedAddressType):
        TargetAddress.from_domain('example.com', False)


def test_non_bytes_domain_and_credentials():
    """测试整数域名和凭据被拒绝，而不是编码成零字节"""
    with pytest.raises(UnsupportedAddressType):
        TargetAddress.from_domain(5, 80)
    with pytest.raises(UnsupportedAddressType):
        build_auth_request(Credentials(3, 2))
    with pytest.raises(UnsupportedAddressType):
        build_auth_request(Credentials('u', 2))

    # bytearray 与 bytes 一样原样使用
    assert TargetAddress.from_domain(bytearray(b'ab'), 80).encode() == b'\x03\x02ab\x00\x50'
    assert build_auth_request(Credentials(bytearray(b'u'), b'p')) == b'\x01\x01u\x01p'


async def test_read_ipv4_reply():
    """测试 IPv4 绑定地址的应答"""
    reader = make_reader(make_reply(address=bytes([10, 0, 0, 1]), port=40000))
    bound = await read_reply(reader)
    assert bound == BoundAddress(0x01, '10.0.0.1', 40000)


async def test_read_ipv6_reply_consumes_exact_length():
    """测试 IPv6 应答读取 4 + 16 + 2 字节，不多读"""
    address = bytes.fromhex('20010db8000000000000000000000002')
    reader = make_reader(make_reply(atyp=0x04, address=address, port=1080) + b'payload')

    bound = await read_reply(reader)

    assert bound == BoundAddress(0x04, '2001:db8::2', 1080)
    assert await reader.read() == b'payload'


async def test_read_domain_reply():
    """测试域名绑定地址的应答"""
    reader = make_reader(make_reply(atyp=0x03, address=b'proxy.local', port=8080) + b'rest')
    bound = await read_reply(reader)
    assert bound == BoundAddress(0x03, 'proxy.local', 8080)
    assert await reader.read() == b'rest'


async def test_read_failure_reply():
    """测试应答码非零时抛出 ConnectionFailed，并读完应答体"""
    reader = make_reader(make_reply(status=0x05, atyp=0x04, address=bytes(16)) + b'next')

    with pytest.raises(ConnectionFailed) as excinfo:
        await read_reply(reader)

    assert excinfo.value.reply_code == 0x05
    assert excinfo.value.reason == "连接被拒绝"
    assert await reader.read() == b'next'


async def test_read_unknown_reply_code():
    """测试未知应答码"""
    with pytest.raises(ConnectionFailed) as excinfo:
        await read_reply(make_reader(make_reply(status=0x42)))
    assert excinfo.value.reply_code == 0x42


async def test_read_malformed_reply():
    """测试格式错误的应答"""
    with pytest.raises(UnexpectedResponse):
        await read_reply(make_reader(bytes([0x04, 0x5a, 0x00, 0x01, 0, 0, 0, 0, 0, 0])))
    with pytest.raises(UnexpectedResponse):
        await read_reply(make_reader(bytes([0x05, 0x00, 0x00, 0x09]) + bytes(6)))


async def test_read_failure_reply_unknown_type():
    """测试地址类型未知且应答码非零时，按应答码抛出异常且不再读取"""
    reader = make_reader(bytes([0x05, 0x05, 0x00, 0x09]) + b'junk')

    with pytest.raises(ConnectionFailed) as excinfo:
        await read_reply(reader)

    assert excinfo.value.reply_code == 0x05
    assert await reader.read() == b'junk'


async def test_read_truncated_reply():
    """测试截断的应答不被当作成功"""
    reply = make_reply(atyp=0x04, address=bytes(16))
    with pytest.raises(TransportError) as excinfo:
        await read_reply(make_reader(reply[:10]))
    assert isinstance(excinfo.value.cause, asyncio.IncompleteReadError)

    with pytest.raises(TransportError):
        await read_reply(make_reader(b'\x05\x00'))


async def main():
    """运行所有测试"""
    tests = [value for name, value in sorted(globals().items())
             if name.startswith('test_') and callable(value)]
    failed = 0
    for test_func in tests:
        try:
            result = test_func()
            if asyncio.iscoroutine(result):
                await result
            print(f"✓ {test_func.__name__}")
        except Exception as e:
            print(f"✗ {test_func.__name__}: {e!r}")
            failed += 1
    print(f"测试结果: 通过={len(tests) - failed}, 失败={failed}")
    return failed == 0


if __name__ == '__main__':
    sys.exit(0 if asyncio.run(main()) else 1)
