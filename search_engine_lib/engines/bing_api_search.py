import time
from typing import Any, Dict, List, Optional

import aiohttp
from pydantic import ValidationError

from .. import register_engine
from ..base import TOTAL_RESULTS, BaseSearchEngine
from ..core.constants import BING_API_URL
from ..core.logger import logger, mask
from ..exceptions import ParseError
from ..models import (
    BingNewsResult,
    BingWebResult,
    Cursor,
    SearchResponse,
    SearchResultItem,
)

WEB = "web"
NEWS = "news"


@register_engine
class BingApiSearch(BaseSearchEngine):
    """使用 Azure Datamarket 的 Bing Search API 进行搜索的引擎。

    使用 Composite 接口以获得总结果数，但只请求单一来源（web 或 news）。
    账户密钥以 `key:key` 的形式做 HTTP Basic 认证。
    """

    MAX_PAGE_HITS = 50
    NEWS_MAX_PAGE_HITS = 15
    MAX_HITS = 2000
    DEFAULT_MAX_HITS = 2000
    DEFAULT_START = 0
    MARKET = "en-us"

    capabilities = frozenset({TOTAL_RESULTS})

    @property
    def name(self) -> str:
        return "bing_api"

    @property
    def description(self) -> str:
        return "通过 Bing Search API (Composite) 提供网页或新闻搜索结果。"

    def __init__(self, config=None, sources: str = WEB, api_url: str = BING_API_URL):
        super().__init__(config)
        if sources not in (WEB, NEWS):
            raise ValueError(f"[{self.name}] 不支持的搜索来源: {sources}")
        self.sources = sources
        self.account_key = self.config.bing.account_key
        self.api_url = api_url
        logger.debug(
            f"[{self.name}] 初始化完成。 ACCOUNT_KEY={mask(self.account_key)}, SOURCES={self.sources}"
        )

    @property
    def max_page_hits(self) -> int:
        return self.NEWS_MAX_PAGE_HITS if self.sources == NEWS else self.MAX_PAGE_HITS

    @property
    def auth(self) -> aiohttp.BasicAuth:
        return aiohttp.BasicAuth(self.account_key, self.account_key)

    async def check_config(self) -> bool:
        if self.is_unset(self.account_key):
            logger.warning(f"[{self.name}] 注册失败：缺少 'account_key'。")
            return False
        logger.debug(f"[{self.name}] 配置检查通过。")
        return True

    async def fetch_page(
        self, query: str, page_size: int, start: Optional[Cursor] = None
    ) -> SearchResponse:
        return await self._fetch(query, page_size, start, self.sources)

    async def search_news(
        self, query: str, page_size: int = NEWS_MAX_PAGE_HITS, start: int = DEFAULT_START
    ) -> SearchResponse:
        """不论实例的默认来源，执行一次 Bing 新闻搜索。"""
        return await self._fetch(query, page_size, start, NEWS)

    async def _fetch(
        self, query: str, page_size: int, start: Optional[Cursor], sources: str
    ) -> SearchResponse:
        max_page = self.NEWS_MAX_PAGE_HITS if sources == NEWS else self.MAX_PAGE_HITS
        top = max(self.MIN_PAGE_HITS, min(page_size, max_page))
        skip = int(start) if start is not None else self.DEFAULT_START
        search_query = self.build_query(query=query, count=top, start=skip)

        # OData 风格的参数，字符串值需要用单引号包裹
        params = {
            "Sources": f"'{sources}'",
            "Query": f"'{query}'",
            "Market": f"'{self.MARKET}'",
            "$top": top,
            "$skip": skip,
            "$format": "Json",
        }

        logger.info(
            f"[{self.name}] 正在搜索: '{query}' (sources={sources}, skip={skip}, top={top})"
        )
        start_time = time.time()
        data = await self._get_json(self.api_url, params=params, auth=self.auth)
        search = self._unwrap(data)

        if sources == NEWS:
            raw_items = search.get("News") or []
            total = self._parse_total(search.get("NewsTotal"))
            results = self._parse_items(raw_items, BingNewsResult)
        else:
            raw_items = search.get("Web") or []
            total = self._parse_total(search.get("WebTotal"))
            results = self._parse_items(raw_items, BingWebResult)

        next_skip: Optional[int] = skip + len(raw_items)
        if not raw_items or (total is not None and next_skip >= total):
            next_skip = None

        return SearchResponse(
            query=search_query,
            engine_name=self.name,
            results=results,
            search_time_seconds=round(time.time() - start_time, 4),
            estimated_total_results=total,
            next_cursor=next_skip,
        )

    def _unwrap(self, data: Any) -> Dict[str, Any]:
        """取出 `d.results[0]`，即本次 Composite 搜索的结果。"""
        try:
            search = data["d"]["results"][0]
        except (KeyError, IndexError, TypeError) as e:
            raise ParseError(f"[{self.name}] API 响应缺少 'd.results' 结构") from e
        if not isinstance(search, dict):
            raise ParseError(f"[{self.name}] 'd.results[0]' 不是 JSON 对象")
        return search

    def _parse_total(self, value: Any) -> Optional[int]:
        if value in (None, ""):
            return None
        try:
            return int(value)
        except (ValueError, TypeError):
            logger.warning(f"[{self.name}] 无法解析总结果数: {value}")
            return None

    def _parse_items(self, items: Any, model) -> List[SearchResultItem]:
        if not isinstance(items, list):
            raise ParseError(f"[{self.name}] 结果字段不是列表")

        results = []
        for item in items:
            try:
                if model is BingNewsResult:
                    result = BingNewsResult(
                        id=item.get("ID", ""),
                        title=item.get("Title", ""),
                        link=item.get("Url", ""),
                        snippet=item.get("Description", ""),
                        source=item.get("Source", ""),
                        date=item.get("Date"),
                    )
                else:
                    result = BingWebResult(
                        id=item.get("ID", ""),
                        title=item.get("Title", ""),
                        link=item.get("Url", ""),
                        snippet=item.get("Description", ""),
                        display_url=item.get("DisplayUrl", ""),
                    )
                results.append(result)
            except (ValidationError, AttributeError) as e:
                logger.warning(f"[{self.name}] 过滤掉一条来自API的无效结果: {e}")
        return results

    async def total_results(self, query: str) -> int:
        page = await self.fetch_page(query, 1)
        return page.estimated_total_results or 0
