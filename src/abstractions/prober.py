from abc import ABC, abstractmethod
from typing import Union


class Prober(ABC):
    """
    Abstract base class for probe strategies. Implementations must stop their
    underlying work (subprocess, socket) when the awaiting task is cancelled.
    """

    @abstractmethod
    async def probe(self, host: str) -> Union[int, float]:
        """
        Probe a host once.

        Args:
            host (str): The target host.

        Returns:
            Union[int, float]: The probe's scalar result.

        Raises:
            ProbeError: If the host could not be probed.
        """
