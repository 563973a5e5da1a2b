"""Exception hierarchy for LFT sessions."""


class TransferError(RuntimeError):
    pass


class SetupError(TransferError):
    """Raised before any network activity: bad source path, bind failure, no local IP."""


class DiscoveryError(TransferError):
    """Raised when no receiver answered the discovery broadcast."""


class ProtocolError(TransferError):
    """Raised when the TCP stream does not follow the header/payload framing."""


class SessionBusyError(TransferError):
    """Raised when a send or receive is started while another one is active."""
