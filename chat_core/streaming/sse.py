"""SSE（text/event-stream）读取。

把 httpx 的逐行输出还原为事件的 data 载荷：连续的 `data:` 行用换行拼接，
空行表示一个事件结束；以 `:` 开头的注释行与其他字段（event/id/retry）忽略。
"""

from typing import Any, AsyncIterable, AsyncIterator, Dict, List

import httpx

from chat_core.domain.exceptions import ApiError, ConnectionTerminatedError, NetworkError


async def iter_sse_data(lines: AsyncIterable[str]) -> AsyncIterator[str]:
    data_lines: List[str] = []
    async for line in lines:
        line = line.rstrip("\r")
        if not line:
            if data_lines:
                yield "\n".join(data_lines)
                data_lines = []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "data":
            data_lines.append(value)
    # 最后一个事件后面可能缺少空行
    if data_lines:
        yield "\n".join(data_lines)


async def fetch_sse(
    client: httpx.AsyncClient,
    url: str,
    *,
    headers: Dict[str, str],
    body: Dict[str, Any],
    error_prefix: str = "OpenAI error",
) -> AsyncIterator[str]:
    """发起 POST 并逐个产出 SSE 事件的 data 字符串。

    非 2xx 直接抛 ApiError（带状态码、状态文本与响应体）；连接中途被
    关闭抛 ConnectionTerminatedError；其他网络错误抛 NetworkError。
    """

    try:
        async with client.stream("POST", url, json=body, headers=headers) as resp:
            if not resp.is_success:
                raw = await resp.aread()
                reason = raw.decode("utf-8", errors="replace") or resp.reason_phrase
                raise ApiError(
                    code="API_ERROR",
                    message=f"{error_prefix} {resp.status_code}: {reason}",
                    http_status=resp.status_code,
                    status_text=resp.reason_phrase,
                    body=reason,
                )
            async for data in iter_sse_data(resp.aiter_lines()):
                yield data
    except (httpx.RemoteProtocolError, httpx.ReadError) as e:
        raise ConnectionTerminatedError(code="CONNECTION_TERMINATED", message=str(e) or "terminated")
    except httpx.RequestError as e:
        raise NetworkError(code="NETWORK_ERROR", message=str(e))
