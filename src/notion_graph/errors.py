"""Exceptions raised while downloading and resolving a page graph."""

from typing import Optional


class NotionGraphError(Exception):
    """Base class for every error raised by notion_graph."""

    code = "NOTION_GRAPH_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        """Convert to error response dict."""
        return {"code": self.code, "message": self.message}


class ConfigError(NotionGraphError):
    """Invalid or missing configuration (e.g. unreadable token file)."""

    code = "CONFIG_ERROR"


class DecodeError(NotionGraphError):
    """A JSON payload did not have the shape expected for its table."""

    code = "DECODE_ERROR"

    def __init__(self, table: str, message: str):
        super().__init__(f"{table}: {message}")
        self.table = table

    def to_dict(self) -> dict:
        result = super().to_dict()
        result["table"] = self.table
        return result


class TransportError(NotionGraphError):
    """Network failure or a non-success HTTP status."""

    code = "TRANSPORT_ERROR"

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status_code: Optional[int] = None
    ):
        super().__init__(message)
        self.url = url
        self.status_code = status_code

    def to_dict(self) -> dict:
        result = super().to_dict()
        if self.url:
            result["url"] = self.url
        if self.status_code is not None:
            result["status_code"] = self.status_code
        return result


class RateLimitError(TransportError):
    """Server kept answering 429 after every retry was spent."""

    code = "RATE_LIMITED"

    def __init__(self, url: str, attempts: int):
        super().__init__(
            f"POST {url} still rate limited after {attempts} attempts",
            url=url,
            status_code=429
        )
        self.attempts = attempts


class MissingEntityError(NotionGraphError):
    """An entity the graph cannot do without is absent."""

    code = "MISSING_ENTITY"

    def __init__(self, entity_id: str, kind: str, message: Optional[str] = None):
        super().__init__(message or f"{kind} '{entity_id}' not found")
        self.entity_id = entity_id
        self.kind = kind

    def to_dict(self) -> dict:
        result = super().to_dict()
        result["id"] = self.entity_id
        result["kind"] = self.kind
        return result


class PageNotFoundError(MissingEntityError):
    """Root page can't be retrieved (deleted, private or never existed)."""

    code = "PAGE_NOT_FOUND"

    def __init__(self, page_id: str):
        super().__init__(page_id, "page", f"couldn't retrieve page '{page_id}'")
