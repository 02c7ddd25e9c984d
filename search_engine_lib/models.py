from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

# 分页游标: 偏移量(Google/Bing/Faroo) 或 next_token(Twitter)
Cursor = Union[int, str]


class SearchQuery(BaseModel):
    """
    搜索引擎的输入模型。
    规范了所有发送给搜索引擎的请求。
    """

    model_config = ConfigDict(frozen=True)

    query: str = Field(
        ...,
        min_length=1,
        description="要搜索的关键词或句子。",
    )
    count: int = Field(
        default=10,
        ge=1,
        description="本页请求的结果数量，引擎会按自身上限截断。",
    )
    start: Optional[Cursor] = Field(
        default=None, description="本页的起始偏移量或分页游标。"
    )
    max_hits: Optional[int] = Field(
        default=None, ge=0, description="跨页累计的结果上限。"
    )


class SearchResultItem(BaseModel):
    """
    单个搜索结果的输出模型。
    各引擎的专有字段只出现在对应的子类上。
    """

    model_config = ConfigDict(frozen=True)

    title: str = Field(default="", description="结果的标题。")
    link: str = Field(default="", description="结果的URL链接。")
    snippet: str = Field(default="", description="结果的摘要或描述。")


class GoogleResultItem(SearchResultItem):
    display_link: str = ""
    formatted_url: str = ""
    mime: Optional[str] = None


class BingWebResult(SearchResultItem):
    id: str = ""
    display_url: str = ""


class BingNewsResult(SearchResultItem):
    id: str = ""
    source: str = Field(default="", description="发布该新闻的机构。")
    date: Optional[str] = None


class FarooRelated(BaseModel):
    """相关文章，只出现在热门新闻中。"""

    model_config = ConfigDict(frozen=True)

    title: str = ""
    url: str = ""
    domain: str = ""


class FarooResult(SearchResultItem):
    iurl: str = Field(default="", description="文章主图的URL。")
    domain: str = ""
    author: str = ""
    news: bool = Field(default=False, description="是否来自报纸、杂志或博客。")
    date: Optional[int] = Field(default=None, description="发布时间（毫秒时间戳）。")
    related: List[FarooRelated] = Field(default_factory=list)


class TweetResult(SearchResultItem):
    tweet_id: str = ""
    author: str = ""
    created_at: Optional[datetime] = None


class SearchResponse(BaseModel):
    """
    搜索引擎单页的输出模型。
    包含了本页的结果列表、元数据以及下一页的游标。
    """

    query: SearchQuery = Field(..., description="用于本次搜索的原始查询对象。")
    engine_name: str = Field(..., description="执行本次搜索的引擎名称。")
    results: List[SearchResultItem] = Field(..., description="搜索结果的列表。")

    search_time_seconds: float = Field(
        ...,
        ge=0,  # 'ge' 表示大于或等于 0
        description="执行本次搜索所花费的时间（秒）。",
    )
    estimated_total_results: Optional[int] = Field(
        default=None, description="搜索引擎估算的总结果数（如果可用）。"
    )
    next_cursor: Optional[Cursor] = Field(
        default=None, description="下一页的游标，None 表示没有更多结果。"
    )


class StreamEvent(BaseModel):
    """实时流推送的一条推文。"""

    model_config = ConfigDict(frozen=True)

    text: str
    author: str
    created_at: Optional[datetime] = None
    tweet_id: Optional[str] = None

    def format(self) -> str:
        return f"@{self.author}: {self.text}"
