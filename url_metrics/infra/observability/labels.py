"""URL 标签规范化。

请求路径来自外部输入，直接作为 Prometheus 标签值会导致高基数和非法字符。
这里把路径压缩为低基数、字符受限的标签值：

    /users/42/orders/7                            -> /users/:id/orders/:id
    /objects/550e8400-e29b-41d4-a716-446655440000 -> /objects/:uuid
    /héllo!!                                      -> /h_llo

``safe_label`` 对任意输入都有定义且幂等：``safe_label(safe_label(s)) == safe_label(s)``。
长度截断不在 ``safe_label`` 内部完成，需要时显式调用 ``truncate_label``。
"""

from __future__ import annotations

import re

ID_PLACEHOLDER = ":id"
UUID_PLACEHOLDER = ":uuid"

ALLOWED_CHARS = "a-zA-Z0-9_:/"

# 段结束于下一个 "/"，或者其后只剩下会被白名单替换/首尾裁剪掉的字符
_SEGMENT_END = r"(?=/|[^a-zA-Z0-9:/]*\Z)"

_NUMERIC_SEGMENT = re.compile(r"/[0-9]+" + _SEGMENT_END)
# 仅匹配小写十六进制，大写 UUID 不会被折叠
_UUID_SEGMENT = re.compile(
    r"/[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}" + _SEGMENT_END
)
_UNDERSCORE_RUN = re.compile(r"_{2,}")
_DISALLOWED = re.compile(f"[^{ALLOWED_CHARS}]")


def normalize_path(path: str, placeholder: str = ID_PLACEHOLDER) -> str:
    """把纯数字路径段替换为 ``/<placeholder>``。

    ``/item42`` 不受影响；``placeholder="{id}"`` 可得到路由模板风格的 ``/users/{id}``。
    """
    replacement = "/" + placeholder
    return _NUMERIC_SEGMENT.sub(lambda _match: replacement, path)


def safe_label(value: str | bytes) -> str:
    if isinstance(value, bytes):
        # 按 UTF-8 解码，非法字节各自变成一个 U+FFFD，随后被替换为 "_"
        value = value.decode("utf-8", errors="replace")
    if not value:
        return ""

    value = normalize_path(value)
    value = _UUID_SEGMENT.sub("/" + UUID_PLACEHOLDER, value)
    value = _UNDERSCORE_RUN.sub("_", value)
    value = _DISALLOWED.sub("_", value)
    # 白名单替换可能产生新的连续下划线
    value = _UNDERSCORE_RUN.sub("_", value)
    return value.strip("_")


def truncate_label(value: str, max_length: int | None) -> str:
    if max_length is None:
        return value
    if max_length < 0:
        raise ValueError("max_length must not be negative")
    if len(value) <= max_length:
        return value
    return value[:max_length].rstrip("_")
