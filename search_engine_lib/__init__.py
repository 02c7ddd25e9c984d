import asyncio
import inspect
from typing import Dict, List, Optional, Type

from .base import BaseSearchEngine
from .core.config import Settings, load_settings
from .core.logger import logger
from .exceptions import (
    AuthError,
    ConfigurationError,
    ParseError,
    RateLimited,
    RegistrationError,
    RequestFailed,
    SearchEngineError,
    Unsupported,
)


# --- 注册器核心 ---

# _class_registry: 存储被 @register_engine 装饰器标记的 *类*。
# 在模块导入时填充，键是引擎名称(str)，值是引擎类。
_class_registry: Dict[str, Type[BaseSearchEngine]] = {}

# _engine_registry: 存储最终初始化并验证通过的搜索引擎 *实例*。
_engine_registry: Dict[str, BaseSearchEngine] = {}


def register_engine(cls: Type[BaseSearchEngine]) -> Type[BaseSearchEngine]:
    """
    一个类装饰器，用于自动注册搜索引擎类。
    """
    if not inspect.isclass(cls) or not issubclass(cls, BaseSearchEngine):
        raise RegistrationError(
            f"被 @register_engine 装饰的对象 {getattr(cls, '__name__', cls)} 不是 BaseSearchEngine 的有效子类。"
        )

    # 为了获取 name，需要用默认配置临时创建一个实例。
    try:
        name = cls().name
    except Exception as e:
        logger.error(
            f"在尝试注册类 {cls.__name__} 时获取其名称失败: {e}", exc_info=True
        )
        return cls  # 返回原类，但不进行注册

    if name in _class_registry:
        logger.warning(
            f"引擎名称冲突: '{name}' 已被注册。类 {cls.__name__} 将覆盖之前的注册。"
        )

    _class_registry[name] = cls
    logger.debug(f"已发现并暂存引擎类: '{name}' (来自 {cls.__name__})")

    return cls


async def initialize(config: Optional[Settings] = None):
    """
    异步初始化搜索引擎库。
    为每个通过 @register_engine 注册的类创建实例，并发检查配置，
    只有检查通过的实例才会进入最终的注册表。

    :param config: 凭据配置，未提供时从默认配置文件加载。
    """
    if _engine_registry:
        logger.warning("搜索引擎库已初始化，跳过重复操作。")
        return

    logger.info("开始初始化搜索引擎库...")

    if not _class_registry:
        logger.warning("未发现任何通过 @register_engine 注册的引擎。")
        return

    settings = config if config is not None else load_settings()

    await asyncio.gather(
        *(
            _initialize_and_validate_engine(name, engine_class, settings)
            for name, engine_class in _class_registry.items()
        )
    )

    logger.info(
        f"搜索引擎库初始化完成。成功注册的引擎: {list(_engine_registry.keys())}"
    )


async def _initialize_and_validate_engine(
    name: str, engine_class: Type[BaseSearchEngine], settings: Settings
):
    """
    (内部函数) 处理单个搜索引擎的实例化、验证和最终注册。
    """
    try:
        instance = engine_class(config=settings)

        if await instance.check_config():
            _engine_registry[name] = instance
            logger.info(f"引擎 '{name}' 初始化并验证通过，注册成功。")
        else:
            logger.warning(f"引擎 '{name}' 配置检查未通过，注册失败。")

    except Exception as e:
        logger.error(
            f"初始化或验证引擎 {engine_class.__name__} 时发生严重错误: {e}",
            exc_info=True,
        )


# --- 自动导入 ---
# 导入 engines 包，触发其中所有引擎文件的 @register_engine 装饰器。
from . import engines  # noqa: E402, F401

# --- 公共API ---


def registered_engine_classes() -> Dict[str, Type[BaseSearchEngine]]:
    """返回所有已发现的引擎类（不论配置是否有效）。"""
    return dict(_class_registry)


def list_engines() -> List[str]:
    """返回所有已成功注册的搜索引擎的名称列表。"""
    if not _engine_registry:
        logger.warning(
            "还没有任何搜索引擎被注册或初始化。请先调用 `await search_engine_lib.initialize()`。"
        )
    return list(_engine_registry.keys())


def get_engine(name: str) -> Optional[BaseSearchEngine]:
    """根据名称获取一个已注册的搜索引擎实例。"""
    if not _engine_registry:
        logger.warning(
            "还没有任何搜索引擎被注册或初始化。请先调用 `await search_engine_lib.initialize()`。"
        )

    engine = _engine_registry.get(name)
    if not engine:
        logger.error(f"无法找到名为 '{name}' 的搜索引擎。可用引擎: {list(_engine_registry.keys())}")
    return engine


async def shutdown():
    """关闭并清空所有已注册的引擎实例。"""
    for name, engine in list(_engine_registry.items()):
        try:
            await engine.close()
        except Exception as e:
            logger.error(f"关闭引擎 '{name}' 时出错: {e}", exc_info=True)
    _engine_registry.clear()


__all__ = [
    "AuthError",
    "BaseSearchEngine",
    "ConfigurationError",
    "ParseError",
    "RateLimited",
    "RegistrationError",
    "RequestFailed",
    "SearchEngineError",
    "Settings",
    "Unsupported",
    "get_engine",
    "initialize",
    "list_engines",
    "load_settings",
    "register_engine",
    "registered_engine_classes",
    "shutdown",
]
