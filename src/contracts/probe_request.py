from enum import Enum
from typing import Mapping, Optional

from pydantic import BaseModel, field_validator


class ProbeMethod(str, Enum):
    """
    Probe strategies a request can select.
    """

    PING = "ping"
    HTTP = "http"
    HTTPS = "https"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ProbeMethod":
        """
        Map a query value to a method. Anything other than ``http`` or ``https``
        selects ping.
        """
        if value == cls.HTTP.value:
            return cls.HTTP
        if value == cls.HTTPS.value:
            return cls.HTTPS
        return cls.PING


class ProbeRequest(BaseModel):
    """
    Data model for a single inbound probe request.
    """

    host: str = ""
    method: ProbeMethod = ProbeMethod.PING
    credential: Optional[str] = None

    @field_validator("method", mode="before")
    @classmethod
    def _permissive_method(cls, value):
        if isinstance(value, ProbeMethod):
            return value
        return ProbeMethod.parse(value)

    @classmethod
    def from_query(cls, query: Mapping[str, str]) -> "ProbeRequest":
        """
        Build a request from query parameters ``key``, ``host`` and ``method``.
        """
        return cls(
            host=query.get("host") or "",
            method=query.get("method"),
            credential=query.get("key"),
        )
