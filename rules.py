import re
from collections import namedtuple

from log_config import get_logger

logger = get_logger(__name__)

SEGMENT_MARK = '\U0001F573'        # 🕳
FIELD_MARK = '\U0001F3F7'          # 🏷
IGNORE_CASE_MARK = '\u2139\ufe0f'   # ℹ️
DEFAULT_TAG_PATTERN = '.*'

Rule = namedtuple('Rule', ['outbound_regex', 'tag_regex'])


class ConfigError(Exception):
    pass


def create_regexp(pattern):
    s = '' if pattern is None else str(pattern)
    flags = re.IGNORECASE if IGNORE_CASE_MARK in s else 0
    return re.compile(s.replace(IGNORE_CASE_MARK, ''), flags)


def format_regexp(regex):
    return f"/{regex.pattern}/{'i' if regex.flags & re.IGNORECASE else ''}"


def parse_rules(outbound):
    """
    解析 outbound 规则字串：用 🕳 分段，每段为 <outboundPattern>🏷<tagPattern>，
    tagPattern 省略时默认 .*，任一 pattern 含 ℹ️ 时忽略大小写。

    正则编译失败时 re.error 原样抛出。
    """
    if outbound is None or not str(outbound).strip():
        raise ConfigError('缺少 outbound 参数：请用 🕳...🏷... 传入匹配规则')

    rules = []
    for seg in str(outbound).split(SEGMENT_MARK):
        # 允许一行一段的写法
        seg = seg.strip('\r\n')
        if not seg:
            continue
        pieces = seg.split(FIELD_MARK)
        outbound_pattern = pieces[0]
        tag_pattern = pieces[1] if len(pieces) > 1 else DEFAULT_TAG_PATTERN
        rule = Rule(create_regexp(outbound_pattern), create_regexp(tag_pattern))
        logger.info(f"规则：🕳 {format_regexp(rule.outbound_regex)}  <= 🏷 {format_regexp(rule.tag_regex)}")
        rules.append(rule)
    if not rules:
        raise ConfigError('outbound 参数中没有有效规则：请用 🕳...🏷... 传入匹配规则')
    return tuple(rules)
