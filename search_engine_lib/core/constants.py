# 这里存储 search_engine_lib 的常量

# 配置文件中缺失的凭据统一使用该占位值
UNKNOWN = "UNKNOWN"

# 默认配置文件名（相对于当前工作目录）
CONFIG_FILE = "config.properties"

REQUEST_TIMEOUT_SECONDS = 30

# Google Custom Search 要求的应用名称
APPLICATION_NAME = "search-engine-lib/1.0"
USER_AGENT = f"{APPLICATION_NAME} (+aiohttp)"

GOOGLE_API_URL = "https://www.googleapis.com/customsearch/v1"
BING_API_URL = "https://api.datamarket.azure.com/Bing/Search/Composite"
FAROO_API_URL = "http://www.faroo.com/api"
TWITTER_API_URL = "https://api.twitter.com"

# Faroo 要求两次请求之间至少间隔 1 秒
FAROO_QUERY_RATE_LIMIT_SECONDS = 1.0
