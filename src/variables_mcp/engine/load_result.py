"""Outcome of reading seed definitions from disk or YAML text.

Bad seed input is expected (hand-edited files), so the loader returns a
LoadResult instead of raising. Store and resolution code raise as usual.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class LoadResult[T]:
    """Either the loaded value or an error message, never both.

    Usage:
        result = load_seed_file(path)
        if result.is_failure:
            logger.warning(result.error)
        else:
            definitions = result.unwrap()
    """

    value: T | None = None
    error: str | None = None
    source: str | None = None

    def __post_init__(self) -> None:
        if (self.error is None) == (self.value is None):
            raise ValueError("LoadResult needs exactly one of value or error")

    @property
    def is_success(self) -> bool:
        return self.error is None

    @property
    def is_failure(self) -> bool:
        return self.error is not None

    @classmethod
    def success(cls, value: T, source: str | None = None) -> "LoadResult[T]":
        return cls(value=value, source=source)

    @classmethod
    def failure(cls, error: str, source: str | None = None) -> "LoadResult[T]":
        return cls(error=error, source=source)

    def __bool__(self) -> bool:
        return self.is_success

    def unwrap(self) -> T:
        """Return the value, raising ValueError with the load error on failure."""
        if self.value is None:
            raise ValueError(f"Cannot unwrap failed load: {self.error}")
        return self.value
