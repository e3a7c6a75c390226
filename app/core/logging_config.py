import logging

LOG_FORMAT = "%(asctime)s - %(levelname)s - [%(name)s] %(message)s"


def setup_logging(level: str = "INFO") -> None:
    """配置根日志器，重复调用不会叠加handler"""
    root = logging.getLogger()
    if not any(getattr(h, "_words_api", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._words_api = True
        root.addHandler(handler)
    root.setLevel(level.upper())

    # httpx 默认会记录每个请求，降到 WARNING
    logging.getLogger("httpx").setLevel(logging.WARNING)
