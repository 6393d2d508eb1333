# commons/results.py
"""
Resultado explícito nas fronteiras de service.

Em vez de deixar exceções atravessarem a fronteira, as services devolvem
ServiceResult.success(valor) ou ServiceResult.failure(erro). A categoria do
erro (ver fiscal.kra_errors) é a variante do resultado.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class ServiceResult(Generic[T]):
    value: Optional[T] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def category(self) -> Optional[str]:
        if self.error is None:
            return None
        return getattr(self.error, "category", "unknown")

    @classmethod
    def success(cls, value: T) -> "ServiceResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: Exception) -> "ServiceResult[T]":
        return cls(error=error)

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value
