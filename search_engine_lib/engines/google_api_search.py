import time
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .. import register_engine
from ..base import HIGHLIGHT, TOTAL_RESULTS, BaseSearchEngine
from ..core.constants import GOOGLE_API_URL
from ..core.logger import logger, mask
from ..exceptions import ParseError, RequestFailed
from ..models import Cursor, GoogleResultItem, SearchResponse


@register_engine
class GoogleApiSearch(BaseSearchEngine):
    """使用 Google Custom Search JSON API 进行搜索的引擎。

    Google 每次最多返回 10 条结果，同一查询最多只能翻到前 100 条。
    """

    MAX_PAGE_HITS = 10
    MAX_HITS = 100
    DEFAULT_MAX_HITS = 100
    DEFAULT_START = 1  # Google 的 start 参数从 1 开始

    capabilities = frozenset({TOTAL_RESULTS, HIGHLIGHT})

    @property
    def name(self) -> str:
        return "google_api"

    @property
    def description(self) -> str:
        return "通过 Google Custom Search API 提供搜索结果，稳定可靠。"

    def __init__(self, config=None, api_url: str = GOOGLE_API_URL):
        super().__init__(config)
        self.api_key = self.config.google.api_key
        self.cse_id = self.config.google.cse_id
        self.api_url = api_url
        logger.debug(
            f"[{self.name}] 初始化完成。 API_KEY={mask(self.api_key)}, CSE_ID={self.cse_id or 'None'}"
        )  # 隐藏key

    async def check_config(self) -> bool:
        if self.is_unset(self.api_key) or self.is_unset(self.cse_id):
            logger.warning(f"[{self.name}] 注册失败：缺少 'api_key' 或 'cse_id'。")
            return False
        logger.debug(f"[{self.name}] 配置检查通过。")
        return True

    async def fetch_page(
        self, query: str, page_size: int, start: Optional[Cursor] = None
    ) -> SearchResponse:
        num = self.clamp_page_size(page_size)
        start_index = int(start) if start is not None else self.DEFAULT_START
        search_query = self.build_query(query=query, count=num, start=start_index)

        params = {
            "key": self.api_key,
            "cx": self.cse_id,
            "q": query,
            "num": num,
            "start": start_index,
        }

        logger.info(f"[{self.name}] 正在搜索: '{query}' (start={start_index}, num={num})")
        start_time = time.time()
        data = await self._get_json(self.api_url, params=params)
        if not isinstance(data, dict):
            raise ParseError(f"[{self.name}] API 响应不是 JSON 对象")

        if "error" in data:
            error = data.get("error") or {}
            raise RequestFailed(
                f"[{self.name}] Google API 返回错误 (Code {error.get('code', 'N/A')}): {error.get('message', '未知API错误')}",
                status=error.get("code"),
            )

        results = self._parse_items(data.get("items", []))

        return SearchResponse(
            query=search_query,
            engine_name=self.name,
            results=results,
            search_time_seconds=round(time.time() - start_time, 4),
            estimated_total_results=self._parse_total(data),
            next_cursor=self._next_start(data),
        )

    def _parse_items(self, items: Any) -> List[GoogleResultItem]:
        if not isinstance(items, list):
            raise ParseError(f"[{self.name}] 'items' 字段不是列表")

        results = []
        for item in items:
            try:
                results.append(
                    GoogleResultItem(
                        title=item.get("title", ""),
                        link=item.get("link", ""),
                        snippet=item.get("snippet", ""),
                        display_link=item.get("displayLink", ""),
                        formatted_url=item.get("formattedUrl", ""),
                        mime=item.get("mime"),
                    )
                )
            except (ValidationError, AttributeError) as e:
                logger.warning(f"[{self.name}] 过滤掉一条来自API的无效结果: {e}")
        return results

    def _parse_total(self, data: Dict[str, Any]) -> Optional[int]:
        # totalResults 是字符串 "123000"
        total_str = data.get("searchInformation", {}).get("totalResults")
        if total_str is None:
            return None
        try:
            return int(total_str)
        except (ValueError, TypeError):
            logger.warning(f"[{self.name}] 无法解析 'totalResults': {total_str}")
            return None

    def _next_start(self, data: Dict[str, Any]) -> Optional[int]:
        next_pages = data.get("queries", {}).get("nextPage") or []
        if not next_pages:
            return None
        start_index = next_pages[0].get("startIndex")
        if start_index is None or start_index > self.MAX_HITS:
            return None
        return int(start_index)

    async def total_results(self, query: str) -> int:
        page = await self.fetch_page(query, 1)
        return page.estimated_total_results or 0
