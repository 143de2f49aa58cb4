class GameWatchError(Exception):
    """Base class for all errors raised inside the monitoring core."""


class ConnectError(GameWatchError):
    """The transport to a game server could not be opened (timeout, refusal, DNS)."""


class ProtocolError(GameWatchError):
    """A peer sent a frame that does not follow the expected wire format."""


class ParseError(GameWatchError):
    """A single line of metrics text could not be interpreted."""


class FetchError(GameWatchError):
    """An HTTP fetch failed; the message is meant to be shown to users."""
