import asyncio
import json
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Sequence, Union

import aiofiles
import aiohttp
from aiohttp import ClientTimeout

from ..base import check_response_status
from ..core.config import Settings
from ..core.constants import REQUEST_TIMEOUT_SECONDS, TWITTER_API_URL, USER_AGENT
from ..core.logger import logger
from ..engines.twitter_api_search import TwitterApiSearch
from ..exceptions import ParseError
from ..models import StreamEvent

STREAM_NAME = "twitter_stream"

# 长连接不设总超时，只限制建立连接的时间
STREAM_TIMEOUT = ClientTimeout(total=None, sock_connect=REQUEST_TIMEOUT_SECONDS)

STREAM_PARAMS = {
    "expansions": "author_id",
    "user.fields": "username",
    "tweet.fields": "created_at",
}


class StreamState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    STOPPED = "stopped"


class TwitterStreamer:
    """
    通过 Twitter v2 实时流持续接收推文。

    有关键词时使用过滤流（先把账户上的过滤规则替换成这些关键词），否则使用抽样流。
    每条推文以 `@用户名: 内容` 的格式追加写入输出文件；没有输出文件时打印到标准输出。
    输出文件在整个推送期间只打开一次，停止时关闭。
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        out_file: Optional[Union[str, Path]] = None,
        on_event: Optional[Callable[[StreamEvent], None]] = None,
        api_url: str = TWITTER_API_URL,
    ):
        self.api = TwitterApiSearch(config, api_url=api_url)
        self.api_url = api_url.rstrip("/")
        self.out_file = Path(out_file) if out_file else None
        self.on_event = on_event

        self.state = StreamState.IDLE
        self.track: Optional[Sequence[str]] = None
        self.error: Optional[BaseException] = None
        self.delivered = 0

        self._file = None
        self._task: Optional[asyncio.Task] = None

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    async def start(self, track: Optional[Sequence[str]] = None) -> asyncio.Task:
        """
        建立连接并在后台任务中开始推送，立即返回该任务。

        :param track: 过滤关键词；为空时使用抽样流。
        """
        if self.state != StreamState.IDLE:
            raise RuntimeError(f"[{STREAM_NAME}] 实时流只能启动一次，当前状态: {self.state.value}")

        self.state = StreamState.CONNECTING
        self.track = list(track) if track else None
        logger.info(f"[{STREAM_NAME}] 正在启动实时流 (track={self.track})")

        try:
            if self.out_file is not None:
                await self._open_sink()
            token = await self.api.bearer_token()
            if self.track:
                await self.api.replace_stream_rules(self.track)
                url = f"{self.api_url}/2/tweets/search/stream"
            else:
                url = f"{self.api_url}/2/tweets/sample/stream"
        except BaseException:
            await self._close_sink()
            self.state = StreamState.STOPPED
            raise

        self._task = asyncio.create_task(self._run(url, token), name=STREAM_NAME)
        return self._task

    async def stop(self) -> None:
        """断开连接并关闭输出文件。可以重复调用。"""
        if self._task is not None and not self._task.done():
            logger.info(f"[{STREAM_NAME}] 正在停止实时流")
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
        await self._close_sink()
        self.state = StreamState.STOPPED

    async def _run(self, url: str, token: str) -> None:
        headers = {"Authorization": f"Bearer {token}", "User-Agent": USER_AGENT}
        try:
            async with aiohttp.ClientSession(timeout=STREAM_TIMEOUT) as session:
                async with session.get(url, params=STREAM_PARAMS, headers=headers) as response:
                    await check_response_status(STREAM_NAME, response)
                    self.state = StreamState.STREAMING
                    logger.info(f"[{STREAM_NAME}] 已连接，开始接收推文")

                    async for raw_line in response.content:
                        line = raw_line.strip()
                        if not line:
                            continue  # keep-alive
                        await self._handle_line(line)

            logger.info(f"[{STREAM_NAME}] 连接已被服务端关闭")
        except asyncio.CancelledError:
            logger.info(f"[{STREAM_NAME}] 实时流已取消")
            raise
        except Exception as e:
            # 不重连
            self.error = e
            logger.error(f"[{STREAM_NAME}] 实时流发生错误，停止推送: {e}", exc_info=True)
        finally:
            await self._close_sink()
            self.state = StreamState.STOPPED

    async def _handle_line(self, line: bytes) -> None:
        try:
            payload = json.loads(line)
        except ValueError as e:
            raise ParseError(f"[{STREAM_NAME}] 无法解析推送内容: {line[:200]!r}") from e

        event = self.parse_event(payload)
        if event is None:
            logger.warning(f"[{STREAM_NAME}] 收到不含推文的消息: {payload.get('errors', payload)}")
            return
        await self.deliver(event)

    @staticmethod
    def parse_event(payload: Dict[str, Any]) -> Optional[StreamEvent]:
        tweet = payload.get("data")
        if not isinstance(tweet, dict):
            return None
        users = (payload.get("includes") or {}).get("users") or []
        author = next(
            (u.get("username", "") for u in users if str(u.get("id")) == str(tweet.get("author_id"))),
            "",
        )
        return StreamEvent(
            text=tweet.get("text", ""),
            author=author,
            created_at=tweet.get("created_at"),
            tweet_id=str(tweet["id"]) if "id" in tweet else None,
        )

    async def deliver(self, event: StreamEvent) -> None:
        """把一条推文交给回调并写入输出。文件写入失败只记录日志，不中断推送。"""
        if self.state == StreamState.STOPPED:
            logger.warning(f"[{STREAM_NAME}] 实时流已停止，丢弃推文: {event.format()[:80]}")
            return
        self.delivered += 1
        if self.on_event is not None:
            self.on_event(event)

        message = event.format()
        if self.out_file is None:
            print(message, flush=True)
            return

        try:
            if self._file is None:
                await self._open_sink()
            await self._file.write(message + "\n")
            await self._file.flush()
        except (OSError, ValueError) as e:
            logger.error(f"[{STREAM_NAME}] 写入文件 {self.out_file} 失败: {e}")

    async def _open_sink(self) -> None:
        if self._file is not None:
            return
        self.out_file.parent.mkdir(parents=True, exist_ok=True)
        self._file = await aiofiles.open(self.out_file, "a", encoding="utf-8")
        logger.info(f"[{STREAM_NAME}] 推文将写入文件 {self.out_file}")

    async def _close_sink(self) -> None:
        if self._file is None:
            return
        file, self._file = self._file, None
        try:
            await file.close()
        except OSError as e:
            logger.error(f"[{STREAM_NAME}] 关闭文件 {self.out_file} 失败: {e}")
