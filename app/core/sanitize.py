"""
Markdown 内容过滤：基于黑名单移除可执行的HTML片段，防止XSS。
不是完整的HTML解析器。
"""
import re

_SCRIPT_RE = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_IFRAME_RE = re.compile(r"<iframe\b[^<]*(?:(?!</iframe>)<[^<]*)*</iframe>", re.IGNORECASE)
_OBJECT_EMBED_RE = re.compile(r"<(object|embed)\b[^<]*(?:(?!</\1>)<[^<]*)*</\1>", re.IGNORECASE)
# 只匹配标签内部的 on* 属性，正文里的 "one = 1" 之类保持不变
_EVENT_HANDLER_RE = re.compile(
    r"(<[a-zA-Z][^>]*?)[\s/]+on\w+\s*=\s*(?:\"[^\"]*\"|'[^']*'|[^\s>]*)",
    re.IGNORECASE,
)
_JS_PROTOCOL_RE = re.compile(r"javascript:", re.IGNORECASE)
_DATA_HTML_RE = re.compile(r"data:text/html", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]*>")


def _strip_event_handlers(text: str) -> str:
    # 一次替换只能去掉每个标签里的一个属性，重复到不再变化
    while True:
        stripped = _EVENT_HANDLER_RE.sub(r"\1", text)
        if stripped == text:
            return text
        text = stripped


def sanitize_markdown(markdown: str) -> str:
    """移除 script/iframe/object/embed、内联事件和危险协议"""
    if not markdown:
        return ""

    sanitized = _SCRIPT_RE.sub("", markdown)
    sanitized = _strip_event_handlers(sanitized)
    sanitized = _JS_PROTOCOL_RE.sub("", sanitized)
    sanitized = _DATA_HTML_RE.sub("", sanitized)
    sanitized = _IFRAME_RE.sub("", sanitized)
    sanitized = _OBJECT_EMBED_RE.sub("", sanitized)

    return sanitized.strip()


def strip_html_tags(markdown: str) -> str:
    """去掉全部HTML标签，只保留文本"""
    if not markdown:
        return ""
    return _TAG_RE.sub("", markdown).strip()
