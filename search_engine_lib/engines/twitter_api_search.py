import time
from typing import Any, Dict, List, Optional

import aiohttp
from pydantic import ValidationError

from .. import register_engine
from ..base import HIGHLIGHT, BaseSearchEngine
from ..core.constants import TWITTER_API_URL
from ..core.logger import logger, mask
from ..exceptions import AuthError, ParseError, RequestFailed
from ..models import Cursor, SearchResponse, TweetResult

RULE_TAG = "search_engine_lib"


@register_engine
class TwitterApiSearch(BaseSearchEngine):
    """使用 Twitter v2 最近推文搜索接口 (search/recent) 的引擎。

    以 next_token 作为分页游标；每页 10-100 条。
    """

    MAX_PAGE_HITS = 100
    MIN_PAGE_HITS = 10  # search/recent 的 max_results 最小为 10
    MAX_HITS = None
    DEFAULT_MAX_HITS = 100
    DEFAULT_START = None

    capabilities = frozenset({HIGHLIGHT})

    @property
    def name(self) -> str:
        return "twitter_api"

    @property
    def description(self) -> str:
        return "通过 Twitter v2 API 搜索最近七天的推文。"

    def __init__(self, config=None, api_url: str = TWITTER_API_URL):
        super().__init__(config)
        self.twitter_config = self.config.twitter
        self.api_url = api_url.rstrip("/")
        self._bearer_token: Optional[str] = (
            None
            if self.is_unset(self.twitter_config.bearer_token)
            else self.twitter_config.bearer_token
        )
        logger.debug(
            f"[{self.name}] 初始化完成。 BEARER={mask(self._bearer_token)}, "
            f"CONSUMER_KEY={mask(self.twitter_config.consumer_key)}"
        )

    async def check_config(self) -> bool:
        if self._bearer_token:
            logger.debug(f"[{self.name}] 配置检查通过 (bearer token)。")
            return True
        if self.is_unset(self.twitter_config.consumer_key) or self.is_unset(
            self.twitter_config.consumer_secret
        ):
            logger.warning(
                f"[{self.name}] 注册失败：缺少 'bearer_token' 或 'consumer_key'/'consumer_secret'。"
            )
            return False
        logger.debug(f"[{self.name}] 配置检查通过 (consumer key)。")
        return True

    async def bearer_token(self) -> str:
        if self._bearer_token is None:
            logger.info(f"[{self.name}] 正在通过 consumer key 获取 bearer token")
            self._bearer_token = await self._fetch_bearer_token()
        return self._bearer_token

    async def _fetch_bearer_token(self) -> str:
        """用 consumer key/secret 通过 OAuth2 client-credentials 换取应用级 bearer token。"""
        data = await self._request_json(
            "POST",
            f"{self.api_url}/oauth2/token",
            auth=aiohttp.BasicAuth(
                self.twitter_config.consumer_key, self.twitter_config.consumer_secret
            ),
            data={"grant_type": "client_credentials"},
        )
        if not isinstance(data, dict) or str(data.get("token_type", "")).lower() != "bearer":
            raise AuthError(f"[{self.name}] 无法获取 bearer token")
        token = data.get("access_token")
        if not token:
            raise ParseError(f"[{self.name}] token 响应缺少 'access_token'")
        return token

    async def fetch_page(
        self, query: str, page_size: int, start: Optional[Cursor] = None
    ) -> SearchResponse:
        max_results = self.clamp_page_size(page_size)
        search_query = self.build_query(query=query, count=max_results, start=start)

        params: Dict[str, Any] = {
            "query": query,
            "max_results": max_results,
            "expansions": "author_id",
            "user.fields": "username",
            "tweet.fields": "created_at",
        }
        if start is not None:
            params["next_token"] = str(start)

        token = await self.bearer_token()
        logger.info(f"[{self.name}] 正在搜索: '{query}' (max_results={max_results})")
        start_time = time.time()
        data = await self._get_json(
            f"{self.api_url}/2/tweets/search/recent",
            params=params,
            headers={"Authorization": f"Bearer {token}"},
        )
        if not isinstance(data, dict):
            raise ParseError(f"[{self.name}] API 响应不是 JSON 对象")

        meta = data.get("meta") or {}
        results = self._parse_tweets(data.get("data") or [], data.get("includes") or {})

        return SearchResponse(
            query=search_query,
            engine_name=self.name,
            results=results,
            search_time_seconds=round(time.time() - start_time, 4),
            estimated_total_results=None,
            next_cursor=meta.get("next_token"),
        )

    def _parse_tweets(self, tweets: Any, includes: Dict[str, Any]) -> List[TweetResult]:
        if not isinstance(tweets, list):
            raise ParseError(f"[{self.name}] 'data' 字段不是列表")

        users = {
            str(user.get("id")): user.get("username", "")
            for user in includes.get("users") or []
        }
        results = []
        for tweet in tweets:
            try:
                tweet_id = str(tweet.get("id", ""))
                author = users.get(str(tweet.get("author_id")), "")
                results.append(
                    TweetResult(
                        title=f"@{author}",
                        link=f"https://twitter.com/{author or 'i'}/status/{tweet_id}",
                        snippet=tweet.get("text", ""),
                        tweet_id=tweet_id,
                        author=author,
                        created_at=tweet.get("created_at"),
                    )
                )
            except (ValidationError, AttributeError) as e:
                logger.warning(f"[{self.name}] 过滤掉一条来自API的无效推文: {e}")
        return results

    async def search(self, query: str, count: int = MAX_PAGE_HITS) -> List[TweetResult]:
        """返回与查询匹配的一页推文。"""
        page = await self.fetch_page(query, count)
        return page.results

    # --- 过滤流规则 ---

    async def get_stream_rules(self) -> List[Dict[str, Any]]:
        token = await self.bearer_token()
        data = await self._get_json(
            f"{self.api_url}/2/tweets/search/stream/rules",
            headers={"Authorization": f"Bearer {token}"},
        )
        if not isinstance(data, dict):
            raise ParseError(f"[{self.name}] 规则响应不是 JSON 对象")
        return data.get("data") or []

    async def replace_stream_rules(self, terms: List[str]) -> List[Dict[str, Any]]:
        """删除账户上已有的过滤规则，换成一条匹配任一关键词的规则。"""
        token = await self.bearer_token()
        headers = {"Authorization": f"Bearer {token}"}
        rules_url = f"{self.api_url}/2/tweets/search/stream/rules"

        existing = await self.get_stream_rules()
        if existing:
            ids = [rule["id"] for rule in existing if "id" in rule]
            logger.debug(f"[{self.name}] 删除已有的 {len(ids)} 条过滤规则")
            await self._request_json(
                "POST", rules_url, headers=headers, json_body={"delete": {"ids": ids}}
            )

        value = " OR ".join(f'"{term}"' if " " in term else term for term in terms)
        data = await self._request_json(
            "POST",
            rules_url,
            headers=headers,
            json_body={"add": [{"value": value, "tag": RULE_TAG}]},
        )
        if not isinstance(data, dict):
            raise ParseError(f"[{self.name}] 规则响应不是 JSON 对象")
        if data.get("errors") and not data.get("data"):
            raise RequestFailed(f"[{self.name}] 添加过滤规则失败: {data['errors']}")
        logger.info(f"[{self.name}] 已设置过滤规则: {value}")
        return data.get("data") or []

    async def term_freq(self, term: str) -> int:
        return len(await self.search(term))

    async def doc_freq(self, term: str) -> int:
        return len(await self.search(term))

    async def search_highlight(self, query: str, num_hits: int) -> List[str]:
        results = await self.search_all(query, num_hits)
        return [f"@{tweet.author}: {tweet.snippet}" for tweet in results]

    async def close(self) -> None:
        # 只丢弃换取来的 token，配置里提供的 token 保留
        if self.is_unset(self.twitter_config.bearer_token):
            self._bearer_token = None
