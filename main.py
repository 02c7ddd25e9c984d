# main.py
"""搜索引擎演示入口: 用固定的一次查询跑一遍某个引擎并打印结果。

    python main.py google "google search api"
    python main.py stream "twitter stream" --out-file tweets.txt
"""
import argparse
import asyncio
from typing import List, Optional

from search_engine_lib import Unsupported, load_settings
from search_engine_lib.base import BaseSearchEngine
from search_engine_lib.core.logger import logger, setup_logging
from search_engine_lib.engines.bing_api_search import BingApiSearch
from search_engine_lib.engines.faroo_api_search import FarooApiSearch
from search_engine_lib.engines.google_api_search import GoogleApiSearch
from search_engine_lib.engines.twitter_api_search import TwitterApiSearch
from search_engine_lib.streaming import TwitterStreamer

ENGINES = {
    "google": GoogleApiSearch,
    "bing": BingApiSearch,
    "faroo": FarooApiSearch,
    "twitter": TwitterApiSearch,
}


async def run_search(engine: BaseSearchEngine, query: str, max_hits: Optional[int]):
    try:
        if isinstance(engine, TwitterApiSearch):
            lines = await engine.search_highlight(query, max_hits or engine.DEFAULT_MAX_HITS)
        else:
            lines = await engine.snippets(query, max_hits)
        for line in lines:
            print(line)
        print(f"\nTop results: {len(lines)}")

        try:
            print(f"Total results: {await engine.total_results(query)}")
        except Unsupported:
            logger.info(f"[{engine.name}] 不提供总结果数")
    finally:
        await engine.close()


async def run_stream(streamer: TwitterStreamer, query: str):
    track = query.split() if query else None
    task = await streamer.start(track)
    try:
        await task
    finally:
        await streamer.stop()


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="search_engine_lib 演示")
    parser.add_argument("engine", choices=[*ENGINES, "stream"])
    parser.add_argument("query", nargs="?", default="search api")
    parser.add_argument("--max-hits", type=int, default=None)
    parser.add_argument("--out-file", default=None, help="实时流的输出文件，默认打印到标准输出")
    parser.add_argument("--config", default=None, help="配置文件路径，默认 ./config.properties")
    parser.add_argument("--debug", action="store_true")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None):
    args = parse_args(argv)
    setup_logging("DEBUG" if args.debug else "INFO")
    settings = load_settings(args.config)

    if args.engine == "stream":
        coro = run_stream(TwitterStreamer(settings, out_file=args.out_file), args.query)
    else:
        coro = run_search(ENGINES[args.engine](settings), args.query, args.max_hits)

    try:
        asyncio.run(coro)
    except KeyboardInterrupt:
        logger.info("已中断")


if __name__ == "__main__":
    main()
