"""
日志配置

环境变量：
- LOG_LEVEL: DEBUG / INFO / WARNING / ERROR / CRITICAL
- DEBUG: 设置为 1 / true 时等同于 LOG_LEVEL=DEBUG
"""
import logging
import os
import sys

LOG_PREFIX = '[📦 sing-box 插入节点脚本]'
LOG_FORMAT = '%(asctime)s ' + LOG_PREFIX + ' %(message)s'
LOG_FORMAT_DETAILED = '%(asctime)s ' + LOG_PREFIX + ' [%(levelname)s] %(name)s (%(filename)s:%(lineno)d): %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

_logging_configured = False


def get_log_level() -> int:
    level_str = os.environ.get('LOG_LEVEL', '').upper().strip()
    if not level_str:
        debug_flag = os.environ.get('DEBUG', '').lower().strip()
        level_str = 'DEBUG' if debug_flag in ('1', 'true', 'yes', 'on') else 'INFO'
    level_map = {
        'DEBUG': logging.DEBUG,
        'INFO': logging.INFO,
        'WARNING': logging.WARNING,
        'WARN': logging.WARNING,
        'ERROR': logging.ERROR,
        'CRITICAL': logging.CRITICAL,
    }
    return level_map.get(level_str, logging.INFO)


def setup_logging(level=None, detailed=False, force=False) -> logging.Logger:
    """配置 root logger，重复调用时除非 force 否则不会重新配置"""
    global _logging_configured
    if _logging_configured and not force:
        return logging.getLogger()
    if level is None:
        level = get_log_level()
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT_DETAILED if detailed else LOG_FORMAT,
        datefmt=DATE_FORMAT,
        stream=sys.stderr,
        force=True
    )
    # httpx 每个请求都会打 INFO，压到 WARNING
    for lib_logger in ('httpx', 'httpcore'):
        logging.getLogger(lib_logger).setLevel(max(level, logging.WARNING))
    _logging_configured = True
    return logging.getLogger()


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
