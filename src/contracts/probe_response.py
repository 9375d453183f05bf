from typing import Optional, Union

from pydantic import BaseModel

from contracts.probe_outcome import ProbeOutcome


class ProbeResponse(BaseModel):
    """
    Response envelope returned for every probe request.
    """

    host: str
    type: str
    result: Union[int, float] = 0
    error: Optional[str] = None

    @classmethod
    def from_outcome(cls, host: str, probe_type: str, outcome: ProbeOutcome) -> "ProbeResponse":
        if outcome.ok:
            return cls(host=host, type=probe_type, result=outcome.value)
        return cls(host=host, type=probe_type, result=0, error=outcome.error)

    def to_body(self) -> dict:
        """Serializable body; ``error`` is omitted when there is none."""
        return self.model_dump(exclude_none=True)
