from fastapi import FastAPI, Request, Response
import os
import re
import orjson

from log_config import setup_logging

setup_logging()

app = FastAPI(
    docs_url=None,
    redoc_url=None,
    openapi_url=None
)

_global_client = None
_config_logic_cache = None
ARGUMENT_NAMES = ('type', 'name', 'url', 'outbound', 'includeUnsupportedProxy', 'clearExisting')


def get_client():
    global _global_client
    if _global_client is None:
        import httpx
        limits = httpx.Limits(max_connections=10, max_keepalive_connections=1)
        timeout = httpx.Timeout(10.0, connect=5.0)
        _global_client = httpx.AsyncClient(
            follow_redirects=True,
            http2=False,
            limits=limits,
            timeout=timeout
        )
    return _global_client


def get_config_logic_func():
    global _config_logic_cache
    if _config_logic_cache is None:
        from main import process_config
        _config_logic_cache = process_config
    return _config_logic_cache


def normalize_scheme(u: str) -> str:
    if not u: return u
    u = u.strip()
    if u.startswith('http:/') and not u.startswith('http://'):
        return 'http://' + u[len('http:/'):]
    if u.startswith('https:/') and not u.startswith('https://'):
        return 'https://' + u[len('https:/'):]
    return u


def error_response(msg, status_code):
    err_content = orjson.dumps({'status': 'error', 'msg': msg}, option=orjson.OPT_INDENT_2)
    return Response(content=err_content, status_code=status_code, media_type="application/json")


def is_blocked(request: Request) -> bool:
    user_agent = request.headers.get('user-agent', "")
    rua_values = os.getenv('RUA')
    return bool(rua_values) and any(rua in user_agent for rua in rua_values.split(',') if rua)


def collect_arguments(request: Request) -> dict:
    params = request.query_params
    arguments = {name: params.get(name) for name in ARGUMENT_NAMES if params.get(name) is not None}
    if arguments.get('url'):
        arguments['url'] = normalize_scheme(arguments['url'])
    return arguments


async def render(content, request: Request):
    from rules import ConfigError
    process_config = get_config_logic_func()
    try:
        pretty_json = await process_config(content, collect_arguments(request), client=get_client())
        return Response(content=pretty_json, media_type="application/json")
    except (ConfigError, re.error) as e:
        return error_response(str(e), 400)
    except Exception as e:
        return error_response(str(e), 500)


@app.post("/config")
async def post_config(request: Request):
    if is_blocked(request):
        return error_response('block', 403)
    return await render(await request.body(), request)


@app.get("/config")
async def get_config(request: Request):
    if is_blocked(request):
        return error_response('block', 403)
    file_param = normalize_scheme(request.query_params.get('file', ''))
    if not file_param:
        return error_response('缺少 file 参数：请传入配置模板 URL', 400)
    try:
        response = await get_client().get(file_param)
        response.raise_for_status()
    except Exception as e:
        return error_response(f"远程模板获取失败: {str(e)}", 500)
    return await render(response.content, request)


def serve():
    import uvicorn
    uvicorn.run(app, host=os.getenv('HOST', '0.0.0.0'), port=int(os.getenv('PORT', '8000')))


if __name__ == "__main__":
    serve()
