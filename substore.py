import os
import re
import asyncio
from urllib.parse import quote

import httpx
import orjson as json

import tool
from log_config import get_logger
from rules import ConfigError

logger = get_logger(__name__)

DEFAULT_BACKEND = 'http://127.0.0.1:3000'
SING_BOX_UA = 'sing-box'
EXCLUDED_TYPES = {'selector', 'urltest', 'direct', 'block', 'dns'}
RE_COLLECTION = re.compile(r'^1$|col|组合', re.I)


class SubscriptionError(Exception):
    pass


def get_backend():
    return os.getenv('SUB_STORE_BACKEND', DEFAULT_BACKEND).rstrip('/')


def normalize_type(value):
    return 'collection' if RE_COLLECTION.search(str(value or '')) else 'subscription'


def build_download_request(backend, name, sub_type='subscription', url=None, include_unsupported_proxy=False):
    path = '/download/collection/' if sub_type == 'collection' else '/download/'
    params = {'target': 'sing-box'}
    if include_unsupported_proxy:
        params['includeUnsupportedProxy'] = 'true'
    if url:
        params['url'] = url
    return backend.rstrip('/') + path + quote(str(name), safe=''), params


def extract_outbounds(content):
    if isinstance(content, (bytes, str)):
        try:
            if isinstance(content, bytes):
                content = content.decode('utf-8-sig')
            if not content.strip():
                return []
            content = json.loads(content)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning(f"订阅内容不是 sing-box JSON，忽略: {e}")
            return []
    if isinstance(content, list):
        return [node for node in content if isinstance(node, dict)]
    if isinstance(content, dict) and isinstance(content.get('outbounds'), list):
        return [
            node for node in content['outbounds']
            if isinstance(node, dict) and node.get('type') not in EXCLUDED_TYPES
        ]
    logger.warning('订阅内容中没有找到 outbounds')
    return []


def load_nodes_file(path):
    logger.info(f"从本地文件读取节点: {path}")
    return extract_outbounds(tool.readBytes(path))


async def fetch_content(client, url, params=None, user_agent=SING_BOX_UA, max_retries=3):
    headers = {'User-Agent': user_agent}
    last_error = None
    for attempt in range(1, max_retries + 1):
        try:
            response = await client.get(url, params=params, headers=headers)
            response.raise_for_status()
            return response.content
        except httpx.HTTPError as e:
            last_error = e
            if attempt < max_retries:
                logger.warning(f"连接出错: {e}，正在进行第 {attempt} 次重试...")
                await asyncio.sleep(1)
            else:
                logger.error(f"连接出错: {e}，已重试 {max_retries - 1} 次，放弃")
    raise SubscriptionError(f"获取订阅失败: {url}（{last_error}）")


async def produce_artifact(client, name=None, sub_type='subscription', url=None,
                           include_unsupported_proxy=False, backend=None, max_retries=3):
    """
    取得 sing-box 节点列表。

    有 name 时走 Sub-Store 的 /download 接口（url 会覆盖订阅里保存的链接）；
    只有 url 时直接请求该链接，要求返回 sing-box JSON。
    """
    if name:
        if url:
            logger.info(f"直接从 URL 读取订阅（经由 {'组合' if sub_type == 'collection' else ''}订阅 {name}）")
        else:
            logger.info(f"将读取名称为 {name} 的 {'组合' if sub_type == 'collection' else ''}订阅")
        request_url, params = build_download_request(
            backend or get_backend(), name, sub_type, url, include_unsupported_proxy
        )
        content = await fetch_content(client, request_url, params=params, max_retries=max_retries)
    elif url:
        logger.info('直接从 URL 读取订阅')
        content = await fetch_content(client, url, max_retries=max_retries)
    else:
        raise ConfigError('缺少 name 或 url 参数：无法确定要读取的订阅')

    proxies = extract_outbounds(content)
    logger.info(f"订阅产出节点数量: {len(proxies)}")
    return proxies
