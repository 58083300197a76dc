#!/usr/bin/env python3
"""
SOCKS5 请求示例

通过 SOCKS5 代理发送一个 HTTP/1.1 GET 请求并打印响应。

使用方法:
    # 使用 Tor 的 SOCKS5 代理，域名由代理解析
    python3 socks5_request.py --proxy socks5h://127.0.0.1:9050 http://icanhazip.com/

    # 本地解析域名，带认证
    python3 socks5_request.py --proxy 127.0.0.1:1080 -u user -p pass --local-dns http://icanhazip.com/
"""

import argparse
import asyncio
import logging
import sys
from urllib.parse import urlparse

from async_socks5 import ProxyConfig, Socks5Client, Socks5Error, load_config, parse_proxy_url
from async_socks5.config import split_host_port
from async_socks5.logger import LoggerManager, add_context

logger = logging.getLogger('async-socks5-request')


def build_http_request(host: str, path: str) -> bytes:
    """构造 HTTP/1.1 GET 请求，响应读完后由服务器关闭连接"""
    return (f"GET {path} HTTP/1.1\r\n"
            f"Host: {host}\r\n"
            f"Connection: close\r\n\r\n").encode()


async def fetch(client: Socks5Client, url: str) -> bytes:
    """
    通过代理获取 URL

    Args:
        client: SOCKS5 客户端
        url: http:// URL

    Returns:
        bytes: 完整的 HTTP 响应
    """
    parsed = urlparse(url)
    if parsed.scheme != 'http' or not parsed.hostname:
        raise ValueError(f"只支持 http:// URL: {url}")

    host = parsed.hostname
    port = parsed.port or 80
    add_context(proxy=client.proxy_address, target=f"{host}:{port}")

    stream = await client.open_connection(host, port)
    async with stream:
        await stream.write(build_http_request(host, parsed.path or '/'))
        chunks = []
        while True:
            data = await stream.read(4096)
            if not data:
                break
            chunks.append(data)
    return b''.join(chunks)


def build_config(args) -> ProxyConfig:
    """
    合并配置: 命令行参数 > 环境变量 > 配置文件 > 默认值
    """
    config = ProxyConfig.from_dict(load_config(args.config)).with_env()

    if args.proxy:
        if '://' in args.proxy:
            proxy = parse_proxy_url(args.proxy)
        else:
            host, port = split_host_port(args.proxy)
            proxy = ProxyConfig(proxy_host=host, proxy_port=port, remote_dns=config.remote_dns)
        config.proxy_host = proxy.proxy_host
        config.proxy_port = proxy.proxy_port
        config.remote_dns = proxy.remote_dns
        if proxy.username is not None:
            config.username = proxy.username
            config.password = proxy.password

    if args.username:
        config.username = args.username
    if args.password:
        config.password = args.password
    if args.local_dns:
        config.remote_dns = False
    return config


def main():
    """
    主函数 - 解析命令行参数并发送请求

    命令行参数:
        url: 要请求的 http:// URL
        --config, -c: 配置文件路径 (默认: config.yaml)
        --proxy: 代理地址 (host:port 或 socks5:// / socks5h:// URL)
        --username, -u: 认证用户名
        --password, -p: 认证密码
        --local-dns: 本地解析域名
        --debug, -d: 启用调试模式
    """
    parser = argparse.ArgumentParser(description='通过 SOCKS5 代理发送 HTTP 请求')
    parser.add_argument('url', help='要请求的 http:// URL')
    parser.add_argument('--config', '-c', default='config.yaml', help='配置文件路径')
    parser.add_argument('--proxy', default=None, help='代理地址 (host:port 或 socks5h://host:port)')
    parser.add_argument('--username', '-u', default=None, help='认证用户名')
    parser.add_argument('--password', '-p', default=None, help='认证密码')
    parser.add_argument('--local-dns', action='store_true', help='本地解析域名')
    parser.add_argument('--debug', '-d', action='store_true', help='启用调试模式')
    args = parser.parse_args()

    LoggerManager().initialize(config_file=args.config)
    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        config = build_config(args)
    except ValueError as e:
        logger.error(f"配置错误: {e}")
        return 1

    logger.info(f"代理: {config.proxy_address}, 远程解析: {config.remote_dns}, "
                f"用户名: {config.username or '-'}")

    try:
        response = asyncio.run(fetch(Socks5Client.from_config(config), args.url))
    except (Socks5Error, ValueError) as e:
        logger.error(f"请求失败: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("收到键盘中断信号")
        return 0

    print(response.decode('utf-8', errors='replace'))
    return 0


if __name__ == '__main__':
    sys.exit(main())
