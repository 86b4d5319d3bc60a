LOG_LINE_LIMIT = 300


def shorten(text: str, limit: int = LOG_LINE_LIMIT) -> str:
    """Trim long log lines (proxied URLs can be several KB of query string)."""
    if text is None or len(text) <= limit:
        return text
    return f"{text[:limit]}... (+{len(text) - limit} chars)"
