# coding: utf-8
import asyncio
import json
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, FrozenSet, List, Optional

import aiohttp
from aiohttp import ClientError, ClientTimeout
from pydantic import ValidationError

from .core.config import Settings
from .core.constants import REQUEST_TIMEOUT_SECONDS, UNKNOWN, USER_AGENT
from .core.logger import logger
from .exceptions import AuthError, ParseError, RateLimited, RequestFailed, Unsupported
from .models import Cursor, SearchQuery, SearchResponse, SearchResultItem

TIMEOUT_CONFIG = ClientTimeout(total=REQUEST_TIMEOUT_SECONDS)

# 可选能力，调用方可以先用 supports() 判断再调用
TOTAL_RESULTS = "total_results"
HIGHLIGHT = "highlight"


async def check_response_status(name: str, response: aiohttp.ClientResponse) -> None:
    """把非 2xx 的响应映射为本库的异常。"""
    if response.status in (401, 403):
        logger.error(f"[{name}] API 拒绝了凭据: 状态码={response.status}")
        raise AuthError(
            f"[{name}] API 访问被拒绝 ({response.status})，请检查凭据",
            status=response.status,
        )
    if response.status == 429:
        logger.warning(f"[{name}] API 配额已用完或请求过于频繁")
        raise RateLimited(f"[{name}] API 请求过于频繁 (429)", status=429)
    if response.status >= 400:
        text = await response.text(errors="replace")
        logger.error(
            f"[{name}] API 请求发生 HTTP 错误: 状态码={response.status}, 内容={text[:200]}"
        )
        raise RequestFailed(
            f"[{name}] API 返回错误状态码 {response.status}", status=response.status
        )


class BaseSearchEngine(ABC):
    """
    搜索引擎的抽象基类 (Abstract Base Class)。
    所有具体的搜索引擎实现都必须继承此类，并实现单页抓取 `fetch_page`；
    跨页累计 (`search_all`) 和摘要提取 (`snippets`) 由基类统一完成。
    """

    # 每页最多/最少请求的结果数（服务商限制）
    MAX_PAGE_HITS: int = 10
    MIN_PAGE_HITS: int = 1
    # 单次查询最多能取到的结果数，None 表示服务商没有限制
    MAX_HITS: Optional[int] = None
    # search_all 未指定 max_hits 时使用的数量
    DEFAULT_MAX_HITS: int = 100
    # 第一页的起始位置
    DEFAULT_START: Optional[Cursor] = 0

    capabilities: FrozenSet[str] = frozenset()

    def __init__(self, config: Optional[Settings] = None):
        """
        初始化基类。
        :param config: 全部引擎的凭据配置，未提供时所有凭据均为 UNKNOWN。
        """
        self.config = config or Settings()
        logger.debug(f"正在初始化搜索引擎: {self.name}")

    @property
    @abstractmethod
    def name(self) -> str:
        """
        返回搜索引擎的唯一标识名称（全小写，下划线分隔）。
        例如: 'google_api', 'faroo_api'
        """
        raise NotImplementedError

    @property
    @abstractmethod
    def description(self) -> str:
        """
        返回对该搜索引擎的简短描述。
        """
        raise NotImplementedError

    @abstractmethod
    async def check_config(self) -> bool:
        """
        异步检查当前配置是否足以让该搜索引擎正常工作。
        例如，检查必要的 API 密钥是否存在。

        :return: 如果配置完整，返回 True；否则返回 False。
        """
        raise NotImplementedError

    @abstractmethod
    async def fetch_page(
        self, query: str, page_size: int, start: Optional[Cursor] = None
    ) -> SearchResponse:
        """
        执行一次请求，返回一页结果。

        :param query: 搜索的关键词。
        :param page_size: 期望的本页结果数量，会被截断到服务商允许的范围内。
        :param start: 起始偏移量或分页游标，None 表示使用引擎默认起点。
        :return: 一个包含本页结果和下一页游标的 SearchResponse 对象。
        """
        raise NotImplementedError

    # --- 分页 ---

    @property
    def max_page_hits(self) -> int:
        return self.MAX_PAGE_HITS

    def clamp_page_size(self, page_size: int) -> int:
        return max(self.MIN_PAGE_HITS, min(page_size, self.max_page_hits))

    def build_query(self, query: str, count: int, start: Optional[Cursor] = None) -> SearchQuery:
        """校验本页的请求参数，不合法时在发出请求之前失败。"""
        try:
            return SearchQuery(query=query, count=count, start=start)
        except ValidationError as e:
            raise RequestFailed(f"[{self.name}] 无效的查询 '{query[:50]}': {e}") from e

    def hit_cap(self, max_hits: Optional[int] = None) -> int:
        cap = self.DEFAULT_MAX_HITS if max_hits is None else max_hits
        if self.MAX_HITS is not None:
            cap = min(cap, self.MAX_HITS)
        return max(cap, 0)

    async def search_all(
        self, query: str, max_hits: Optional[int] = None
    ) -> List[SearchResultItem]:
        """
        逐页抓取并累计结果，直到满足以下任一条件:
        累计数量达到上限、某一页为空、服务商表示没有下一页。

        :param query: 搜索的关键词。
        :param max_hits: 最多返回的结果数量，会被截断到服务商的总上限。
        :return: 按服务商返回顺序排列的结果，长度不超过 max_hits。
        """
        cap = self.hit_cap(max_hits)
        results: List[SearchResultItem] = []
        cursor = self.DEFAULT_START
        pages = 0

        while len(results) < cap:
            page_size = min(self.max_page_hits, cap - len(results))
            page = await self.fetch_page(query, page_size, cursor)
            pages += 1
            if not page.results:
                break
            results.extend(page.results)
            if page.next_cursor is None:
                break
            cursor = page.next_cursor

        logger.debug(
            f"[{self.name}] '{query}' 共请求 {pages} 页, 累计 {len(results)} 条结果 (上限 {cap})"
        )
        return results[:cap]

    async def snippets(self, query: str, max_hits: Optional[int] = None) -> List[str]:
        """提取前 max_hits 条结果的摘要。"""
        start_time = time.time()
        logger.debug(f"[{self.name}] 开始提取摘要: '{query}'")
        snippets = [item.snippet for item in await self.search_all(query, max_hits)]
        logger.debug(
            f"[{self.name}] 获得 {len(snippets)} 条摘要, 耗时 {round(time.time() - start_time, 4)} 秒"
        )
        return snippets

    # --- 能力接口 ---

    def supports(self, capability: str) -> bool:
        return capability in self.capabilities

    async def total_results(self, query: str) -> int:
        """返回服务商估算的总结果数。"""
        raise Unsupported(self.name, TOTAL_RESULTS)

    async def term_freq(self, term: str) -> int:
        """词频，即该词出现的总次数（以估算总结果数代替）。"""
        return await self.total_results(term)

    async def doc_freq(self, term: str) -> int:
        """文档频率，即包含该词的文档数（以估算总结果数代替）。"""
        return await self.total_results(term)

    async def search_highlight(self, query: str, num_hits: int) -> List[str]:
        """搜索并返回结果的高亮片段。"""
        if not self.supports(HIGHLIGHT):
            raise Unsupported(self.name, HIGHLIGHT)
        return await self.snippets(query, num_hits)

    async def close(self) -> None:
        """释放资源；每次请求都使用独立的会话，默认无需关闭任何东西。"""
        pass

    # --- HTTP ---

    @staticmethod
    def is_unset(value: Optional[str]) -> bool:
        return not value or value == UNKNOWN

    async def _get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        auth: Optional[aiohttp.BasicAuth] = None,
    ) -> Any:
        return await self._request_json(
            "GET", url, params=params, headers=headers, auth=auth
        )

    async def _request_json(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        auth: Optional[aiohttp.BasicAuth] = None,
        data: Optional[Dict[str, str]] = None,
        json_body: Optional[Any] = None,
    ) -> Any:
        """
        发起一次请求并解析 JSON。不做任何重试。

        :raises AuthError: 服务端返回 401/403。
        :raises RateLimited: 服务端返回 429。
        :raises RequestFailed: 网络错误、超时或其他非 2xx 状态码。
        :raises ParseError: 响应不是合法的 JSON。
        """
        request_headers = {"User-Agent": USER_AGENT, "Accept": "application/json"}
        request_headers.update(headers or {})

        try:
            async with aiohttp.ClientSession(timeout=TIMEOUT_CONFIG) as session:
                async with session.request(
                    method,
                    url,
                    params=params,
                    headers=request_headers,
                    auth=auth,
                    data=data,
                    json=json_body,
                ) as response:
                    await check_response_status(self.name, response)

                    body = await response.read()
                    try:
                        return json.loads(body)
                    except ValueError as e:
                        logger.error(
                            f"[{self.name}] API 返回了非 JSON 内容: {body[:200]!r}..."
                        )
                        raise ParseError(f"[{self.name}] 无法解析 API 响应: {e}") from e

        except asyncio.TimeoutError as e:
            logger.error(
                f"[{self.name}] API 请求超时 ({REQUEST_TIMEOUT_SECONDS}s): {url}"
            )
            raise RequestFailed(f"[{self.name}] API 请求超时") from e
        except ClientError as e:
            logger.error(f"[{self.name}] 请求API时发生网络错误: {e}")
            raise RequestFailed(f"[{self.name}] 网络错误: {e}") from e
