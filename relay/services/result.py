from dataclasses import asdict, dataclass
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass
class Result(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @staticmethod
    def success(value: T) -> "Result[T]":
        return Result(ok=True, value=value)

    @staticmethod
    def failure(error: str, code: str = "unknown") -> "Result[T]":
        return Result(ok=False, error=error, error_code=code)

    def unwrap_or(self, default: T) -> T:
        return self.value if self.ok else default

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "Result[Any]":
        """Rebuild a result stored with ``to_dict``; raises ValueError on foreign payloads."""
        if not isinstance(data, dict) or not isinstance(data.get("ok"), bool):
            raise ValueError(f"Not a stored result: {data!r}")
        return Result(
            ok=data["ok"],
            value=data.get("value"),
            error=data.get("error"),
            error_code=data.get("error_code"),
        )
