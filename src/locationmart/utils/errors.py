from __future__ import annotations

from typing import Any, TYPE_CHECKING

from pydantic import ValidationError

if TYPE_CHECKING:
    from ..geocoding.models import AdapterFailure, GeocodeQuery


class LocationMartError(Exception):
    """Base class for errors raised by locationmart."""


class GeocodingError(LocationMartError):
    pass


class InvalidQueryError(GeocodingError):
    """A query carries neither text nor coordinates."""


class LocationNotFoundError(GeocodingError):
    """No adapter produced a candidate for the query.

    Distinct from adapter failures: ``failures`` lists the requests that broke
    along the way, which may be empty when every adapter simply had no match.
    """

    def __init__(self, query: "GeocodeQuery", failures: list["AdapterFailure"] | None = None):
        self.query = query
        self.failures = list(failures or [])
        label = query.text or (f"{query.coordinates[0]}, {query.coordinates[1]}" if query.coordinates else "")
        super().__init__(f"No location found for '{label}'")


class AdapterRequestError(LocationMartError):
    """One outbound adapter request failed (network, HTTP status, bad payload)."""

    def __init__(self, message: str, url: str = "", http_status: int | None = None, label: str = "exception"):
        self.url = url
        self.http_status = http_status
        self.label = label
        super().__init__(message)


class BatchAbortedError(LocationMartError):
    def __init__(self, reason: str, completed: int = 0):
        self.reason = reason
        self.completed = completed
        super().__init__(f"Batch run aborted after {completed} items: {reason}")


class CatalogValidationError(LocationMartError):
    def __init__(self, source: str, errors: list[dict[str, Any]], original: ValidationError | None = None):
        self.source = source
        self.errors = errors
        self.original = original
        msg = f"Validation failed for {len(errors)} catalog records from '{source}'"

        super().__init__(msg)

    def summary(self, limit: int = 5) -> str:
        """Human-readable summary of the first few validation issues."""
        lines = []
        for err in self.errors[:limit]:
            loc = ".".join(str(p) for p in err.get("loc", []))
            lines.append(f"- {loc}: {err.get('msg')} ({err.get('type')})")
        if len(self.errors) > limit:
            lines.append(f"... ({len(self.errors) - limit} more)")
        return "\n".join(lines)
