"""
sing-box 插入节点

1) 从「订阅/组合订阅」产出 sing-box 节点（outbounds items）
2) 把节点 tag 依规则插入到 config 的指定 outbound(outbounds:[]) 里（通常是 urltest）

规则字串用 🕳 分段，每段格式 🕳<outboundPattern>🏷<tagPattern>，ℹ️ 代表忽略大小写，
tagPattern 省略时默认 .*，例如：

    🕳ℹ️🇭🇰 HongKong🏷ℹ️港|hk|hongkong|🇭🇰
    🕳ℹ️🇺🇸 United States🏷ℹ️美|us|united states|🇺🇸
    🕳ℹ️🇸🇬 Singapore🏷ℹ️^(?!.*(?:us)).*(新|sg|singapore|🇸🇬)
"""
import re
import logging
import sys
import asyncio
import argparse

import httpx
import json5
import orjson as json

import tool
from log_config import get_logger, setup_logging
from merger import append_nodes, fill_empty_outbounds, insert_tags
from rules import ConfigError, parse_rules
from substore import SubscriptionError, get_backend, load_nodes_file, normalize_type, produce_artifact

logger = get_logger(__name__)

DEFAULT_ARGUMENTS = {
    'type': '',
    'name': '',
    'url': '',
    'outbound': '',
    'includeUnsupportedProxy': False,
    'clearExisting': True,
}
TRUE_VALUES = {'1', 'true', 'yes', 'on'}


def parse_clear_existing(value):
    # 只有明确的 false 才关闭
    if value is None:
        return True
    return str(value).strip().lower() != 'false'


def parse_bool(value):
    if isinstance(value, bool):
        return value
    return str(value or '').strip().lower() in TRUE_VALUES


def normalize_arguments(arguments):
    args = DEFAULT_ARGUMENTS.copy()
    args.update({k: v for k, v in (arguments or {}).items() if v is not None})
    args['type'] = normalize_type(args['type'])
    args['includeUnsupportedProxy'] = parse_bool(args['includeUnsupportedProxy'])
    args['clearExisting'] = parse_clear_existing(args['clearExisting'])
    logger.info(
        f"传入参数 type: {args['type']}, name: {args['name']}, url: {'[provided]' if args['url'] else '[none]'}, "
        f"outbound: {'[provided]' if args['outbound'] else '[none]'}, clearExisting: {args['clearExisting']}"
    )
    return args


def load_config(content):
    try:
        if isinstance(content, bytes):
            content = content.decode('utf-8-sig')
    except UnicodeDecodeError as e:
        logger.error(f"{e}")
        raise ConfigError('配置文件不是合法的 JSON5 格式：不是 UTF-8 编码') from e
    try:
        config = json.loads(content)
    except json.JSONDecodeError:
        logger.info('配置文件不是严格 JSON，改用 JSON5 解析')
        try:
            config = json5.loads(content)
        except ValueError as e:
            logger.error(f"{e}")
            raise ConfigError('配置文件不是合法的 JSON5 格式') from e
    if not isinstance(config, dict):
        raise ConfigError('配置文件不是合法的 JSON5 格式：顶层必须是对象')
    if not isinstance(config.get('outbounds'), list):
        config['outbounds'] = []
    return config


def dump_config(config):
    return json.dumps(config, option=json.OPT_INDENT_2 | json.OPT_NON_STR_KEYS).decode('utf-8')


async def generate_config_logic(content, arguments, client=None, backend=None, proxies=None, max_retries=3):
    """
    解析配置、读取节点并按规则插入，返回修改后的 config（dict）。

    proxies 不为 None 时直接使用，不再请求订阅。
    """
    logger.info('🚀 开始')
    args = normalize_arguments(arguments)

    logger.info('① 解析配置文件')
    config = load_config(content)

    logger.info('② outbound 规则解析')
    rules = parse_rules(args['outbound'])

    if proxies is None:
        logger.info('③ 获取订阅节点（sing-box outbounds）')
        proxies = await produce_artifact(
            client,
            name=args['name'],
            sub_type=args['type'],
            url=args['url'],
            include_unsupported_proxy=args['includeUnsupportedProxy'],
            backend=backend,
            max_retries=max_retries
        )
    else:
        logger.info(f"③ 使用已提供的节点: {len(proxies)}")

    logger.info('④ 插入节点 tag 到目标 outbound.outbounds')
    insert_tags(config, proxies, rules, clear_existing=args['clearExisting'])

    logger.info('⑤ 空 outbounds 兜底（避免 sing-box 报错）')
    fill_empty_outbounds(config, rules)

    logger.info('⑥ 追加节点本体到 config.outbounds（按 tag 去重）')
    append_nodes(config, proxies)

    logger.info('🔚 结束')
    return config


async def process_config(content, arguments, client=None, **kwargs):
    config = await generate_config_logic(content, arguments, client=client, **kwargs)
    return dump_config(config)


def build_parser():
    parser = argparse.ArgumentParser(description='把订阅节点按规则插入 sing-box 配置的 outbound 分组')
    parser.add_argument('-c', '--config', required=True, help='sing-box 配置文件（JSON / JSON5）')
    parser.add_argument('-o', '--output', help='输出文件，缺省输出到 stdout')
    parser.add_argument('--outbound', required=True, help='规则字串：🕳<outboundPattern>🏷<tagPattern>')
    parser.add_argument('--type', default='', help='collection / 组合订阅 / 1 为组合订阅，其他为订阅')
    parser.add_argument('--name', default='', help='订阅或组合订阅名称')
    parser.add_argument('--url', default='', help='直接传入订阅 URL')
    parser.add_argument('--include-unsupported-proxy', action='store_true', help='包含 SSR 等不支持的节点')
    parser.add_argument('--clear-existing', default='true', help='false 表示不清空目标 outbound 原有的 outbounds')
    parser.add_argument('--nodes', help='从本地 sing-box JSON 读取节点，不请求订阅')
    parser.add_argument('--backend', default=None, help='Sub-Store 后端地址，缺省读取 SUB_STORE_BACKEND')
    parser.add_argument('--timeout', type=float, default=10.0)
    parser.add_argument('--retries', type=int, default=3)
    parser.add_argument('-v', '--verbose', action='store_true')
    return parser


async def run(options):
    arguments = {
        'type': options.type,
        'name': options.name,
        'url': options.url,
        'outbound': options.outbound,
        'includeUnsupportedProxy': options.include_unsupported_proxy,
        'clearExisting': options.clear_existing,
    }
    try:
        content = tool.readBytes(options.config)
        proxies = load_nodes_file(options.nodes) if options.nodes else None
    except OSError as e:
        raise ConfigError(f"读取文件失败: {e}") from e
    async with httpx.AsyncClient(follow_redirects=True, timeout=httpx.Timeout(options.timeout)) as client:
        return await process_config(
            content,
            arguments,
            client=client,
            backend=options.backend or get_backend(),
            proxies=proxies,
            max_retries=options.retries
        )


def main(argv=None):
    options = build_parser().parse_args(argv)
    setup_logging(level=logging.DEBUG if options.verbose else None)
    try:
        output = asyncio.run(run(options))
    except (ConfigError, SubscriptionError, re.error) as e:
        logger.error(f"{e}")
        return 1
    if options.output:
        tool.saveFile(options.output, output)
        logger.info(f"已保存到: {options.output}")
    else:
        sys.stdout.write(output + '\n')
    return 0


if __name__ == '__main__':
    sys.exit(main())
