import time
from typing import Any, List, Optional

from pydantic import ValidationError

from .. import register_engine
from ..base import HIGHLIGHT, BaseSearchEngine
from ..core.constants import FAROO_API_URL, FAROO_QUERY_RATE_LIMIT_SECONDS
from ..core.logger import logger, mask
from ..exceptions import ParseError
from ..models import Cursor, FarooRelated, FarooResult, SearchResponse
from ..rate_limit import RateLimiter

# 所有 Faroo 引擎实例默认共享同一个限速器
default_rate_limiter = RateLimiter(FAROO_QUERY_RATE_LIMIT_SECONDS, name="faroo_api")


@register_engine
class FarooApiSearch(BaseSearchEngine):
    """使用 Faroo Search API 进行网页搜索的引擎。

    Faroo 每页最多 10 条、每个查询最多 100 条结果，并要求每秒最多一次请求。
    Faroo 不提供总结果数，因此 total_results / term_freq / doc_freq 都不可用。
    """

    MAX_PAGE_HITS = 10
    MAX_HITS = 100
    DEFAULT_MAX_HITS = 100
    DEFAULT_START = 1
    SOURCE = "web"

    capabilities = frozenset({HIGHLIGHT})

    @property
    def name(self) -> str:
        return "faroo_api"

    @property
    def description(self) -> str:
        return "通过 Faroo Search API 提供网页搜索结果，带客户端限速。"

    def __init__(
        self,
        config=None,
        rate_limiter: Optional[RateLimiter] = None,
        api_url: str = FAROO_API_URL,
    ):
        super().__init__(config)
        self.api_key = self.config.faroo.api_key
        self.rate_limiter = rate_limiter or default_rate_limiter
        self.api_url = api_url
        logger.debug(
            f"[{self.name}] 初始化完成。 API_KEY={mask(self.api_key)}, 限速间隔={self.rate_limiter.interval}s"
        )

    async def check_config(self) -> bool:
        if self.is_unset(self.api_key):
            logger.warning(f"[{self.name}] 注册失败：缺少 'api_key'。")
            return False
        logger.debug(f"[{self.name}] 配置检查通过。")
        return True

    async def fetch_page(
        self, query: str, page_size: int, start: Optional[Cursor] = None
    ) -> SearchResponse:
        length = self.clamp_page_size(page_size)
        start_point = int(start) if start is not None else self.DEFAULT_START
        search_query = self.build_query(query=query, count=length, start=start_point)

        params = {
            "q": query,
            "start": start_point,
            "length": length,
            "src": self.SOURCE,
            "f": "json",
            "key": self.api_key,
        }

        # 在限速器内发起请求，请求结束（无论成败）后才开始计算下一次的间隔
        async with self.rate_limiter:
            logger.info(
                f"[{self.name}] 正在搜索: '{query}' (start={start_point}, length={length})"
            )
            start_time = time.time()
            data = await self._get_json(self.api_url, params=params)

        if not isinstance(data, dict):
            raise ParseError(f"[{self.name}] API 响应不是 JSON 对象")
        raw_items = data.get("results") or []
        results = self._parse_items(raw_items)

        return SearchResponse(
            query=search_query,
            engine_name=self.name,
            results=results,
            search_time_seconds=round(time.time() - start_time, 4),
            estimated_total_results=None,
            next_cursor=start_point + len(raw_items) if raw_items else None,
        )

    def _parse_items(self, items: Any) -> List[FarooResult]:
        if not isinstance(items, list):
            raise ParseError(f"[{self.name}] 'results' 字段不是列表")

        results = []
        for item in items:
            try:
                results.append(
                    FarooResult(
                        title=item.get("title", ""),
                        link=item.get("url", ""),
                        snippet=item.get("kwic", ""),
                        iurl=item.get("iurl") or "",
                        domain=item.get("domain") or "",
                        author=item.get("author") or "",
                        news=bool(item.get("news", False)),
                        date=item.get("date"),
                        related=[
                            FarooRelated(
                                title=rel.get("title", ""),
                                url=rel.get("url", ""),
                                domain=rel.get("domain", ""),
                            )
                            for rel in item.get("related") or []
                        ],
                    )
                )
            except (ValidationError, AttributeError) as e:
                logger.warning(f"[{self.name}] 过滤掉一条来自API的无效结果: {e}")
        return results
