import os
import tempfile


def readBytes(path):
    with open(path, 'rb') as f:
        return f.read()


def saveFile(path, content):
    # 先写临时文件再替换，失败时不会留下半截配置
    directory = os.path.dirname(os.path.abspath(path))
    fd, tmp_path = tempfile.mkstemp(prefix='.tmp-', suffix='.json', dir=directory)
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(content)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise
