from abc import ABC, abstractmethod

from gamewatch.models.server import ProbeTarget


class GameQuery(ABC):
    """
    Capability set shared by every protocol probe.

    Implementations differ entirely in their wire format, so this class only
    fixes the contract:

    - ``connect`` opens the transport and raises ConnectError on timeout,
      refusal or name resolution failure.
    - ``query`` never raises. Internal failures end in a fallback result or
      'N/A', including when ``connect`` did not succeed.
    - ``dispose`` releases the transport and may be called any number of
      times.
    """

    target: ProbeTarget

    @abstractmethod
    async def connect(self) -> None:
        ...

    @abstractmethod
    async def query(self) -> str:
        ...

    @abstractmethod
    def dispose(self) -> None:
        ...
