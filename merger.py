from log_config import get_logger

logger = get_logger(__name__)

COMPATIBLE_TAG = 'COMPATIBLE'
COMPATIBLE_OUTBOUND = {'tag': COMPATIBLE_TAG, 'type': 'direct'}


def match_group(regex, ob):
    tag = ob.get('tag') if isinstance(ob, dict) else None
    return isinstance(tag, str) and regex.search(tag) is not None


def get_tags(proxies, regex):
    return [p['tag'] for p in proxies if isinstance(p, dict) and p.get('tag') and regex.search(str(p['tag']))]


def _outbound_dicts(config):
    return [ob for ob in config['outbounds'] if isinstance(ob, dict)]


def insert_tags(config, proxies, rules, clear_existing=True):
    """
    把命中 tag_regex 的节点 tag 合并进命中 outbound_regex 的分组。

    同一分组命中多条规则时逐条处理；clear_existing 为真时后一条规则会清掉前一条插入的 tag。
    合并按首次出现的顺序去重：原有条目在前，新 tag 按节点顺序追加。
    """
    for ob in _outbound_dicts(config):
        for rule in rules:
            if not match_group(rule.outbound_regex, ob):
                continue
            if not isinstance(ob.get('outbounds'), list):
                ob['outbounds'] = []
            if clear_existing:
                ob['outbounds'] = []

            tags = get_tags(proxies, rule.tag_regex)
            before = len(ob['outbounds'])
            ob['outbounds'] = list(dict.fromkeys(ob['outbounds'] + tags))
            logger.info(f"🕳 命中: {ob['tag']}，插入 {len(tags)} 个（原 {before} -> 现 {len(ob['outbounds'])}）")
    return config


def fill_empty_outbounds(config, rules):
    """空 outbounds 的分组插入 COMPATIBLE(direct)，避免 sing-box 报错；返回是否用到了 COMPATIBLE"""
    compatible_added = False
    for ob in _outbound_dicts(config):
        for rule in rules:
            if not match_group(rule.outbound_regex, ob):
                continue
            if not isinstance(ob.get('outbounds'), list):
                ob['outbounds'] = []
            if ob['outbounds']:
                continue
            if not compatible_added:
                if not any(isinstance(x, dict) and x.get('tag') == COMPATIBLE_TAG for x in config['outbounds']):
                    config['outbounds'].append(dict(COMPATIBLE_OUTBOUND))
                compatible_added = True
            ob['outbounds'].append(COMPATIBLE_TAG)
            logger.info(f"🕳 {ob['tag']} 的 outbounds 为空 -> 自动插入 COMPATIBLE(direct)")
    return compatible_added


def append_nodes(config, proxies):
    existing = {o.get('tag') for o in _outbound_dicts(config)}
    appended = 0
    for p in proxies:
        if not isinstance(p, dict) or not p.get('tag'):
            continue
        if p['tag'] in existing:
            continue
        config['outbounds'].append(p)
        existing.add(p['tag'])
        appended += 1
    logger.info(f"追加节点本体: {appended}")
    return appended
