# realtrack/models/fetch_result.py

"""Tagged result types returned by the fetcher."""

from dataclasses import dataclass


@dataclass(frozen=True)
class FetchOk:
    """A 2xx response with its decoded body."""

    url: str
    body: str
    status: int


@dataclass(frozen=True)
class FetchTimeout:
    """The request did not complete within its timeout."""

    url: str
    message: str


@dataclass(frozen=True)
class FetchNetworkError:
    """DNS, TLS, connection or other transport failure."""

    url: str
    message: str


@dataclass(frozen=True)
class FetchHttpError:
    """The server answered with a non-2xx status."""

    url: str
    status: int

    @property
    def is_not_found(self) -> bool:
        """HTTP 404 is the strongest removal signal a source gives."""
        return self.status == 404


FetchResult = FetchOk | FetchTimeout | FetchNetworkError | FetchHttpError


def describe_failure(result: FetchResult) -> str:
    """Short, human-readable description of a failed fetch."""
    if isinstance(result, FetchHttpError):
        return f"HTTP {result.status} for {result.url}"
    if isinstance(result, FetchTimeout):
        return f"Timeout for {result.url}: {result.message}"
    if isinstance(result, FetchNetworkError):
        return f"Network error for {result.url}: {result.message}"
    return f"OK {result.status} for {result.url}"
