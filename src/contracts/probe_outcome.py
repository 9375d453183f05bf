from typing import Optional, Union

from pydantic import BaseModel


class ProbeOutcome(BaseModel):
    """
    Result of one probe: either a scalar value or a human-readable error.
    """

    value: Optional[Union[int, float]] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Union[int, float]) -> "ProbeOutcome":
        return cls(value=value)

    @classmethod
    def failure(cls, error: str) -> "ProbeOutcome":
        return cls(error=error)
