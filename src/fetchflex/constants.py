"""
HTTP 客户端常量配置模块

定义客户端使用的常量、默认配置等（时间单位统一为毫秒）
"""

# HTTP 方法常量
HTTP_METHOD_GET = "GET"
HTTP_METHOD_POST = "POST"
HTTP_METHOD_PUT = "PUT"
HTTP_METHOD_DELETE = "DELETE"
HTTP_METHOD_PATCH = "PATCH"

# 客户端支持的 HTTP 方法集合
SUPPORTED_METHODS = frozenset(
    {
        HTTP_METHOD_GET,
        HTTP_METHOD_POST,
        HTTP_METHOD_PUT,
        HTTP_METHOD_DELETE,
        HTTP_METHOD_PATCH,
    }
)

# 默认配置
DEFAULT_METHOD = HTTP_METHOD_GET
DEFAULT_TIMEOUT = 10000  # 默认单次尝试超时时间（毫秒），0 表示不限制
DEFAULT_RETRIES = 3  # 默认重试次数，0 表示不重试
DEFAULT_RETRY_DELAY = 1000  # 默认重试间隔（毫秒）
DEFAULT_MAX_RETRY_DELAY = 30000  # 退避延迟上限（毫秒）
DEFAULT_JITTER_FACTOR = 0.0  # 默认不加抖动
DEFAULT_MAX_CONCURRENCY = 10  # 批量请求默认最大并发数

# 重试次数硬上限，与调用方传入的 retries 无关
MAX_RETRIES_CEILING = 10

# 需要重试的 HTTP 状态码
RETRY_STATUS_CODES = frozenset({500, 502, 503, 504})

# 成功状态码范围 [200, 300)
SUCCESS_STATUS_MIN = 200
SUCCESS_STATUS_MAX = 300

# 没有响应体的状态码
BODYLESS_STATUS_CODES = frozenset({204, 205, 304})

# 内容类型
CONTENT_TYPE_HEADER = "Content-Type"
CONTENT_TYPE_JSON = "application/json"
CONTENT_TYPE_FORM_URLENCODED = "application/x-www-form-urlencoded"
CONTENT_TYPE_MULTIPART = "multipart/form-data"
CONTENT_TYPE_OCTET_STREAM = "application/octet-stream"

# 流式读取的默认分块大小（字节）
DEFAULT_CHUNK_SIZE = 8192
