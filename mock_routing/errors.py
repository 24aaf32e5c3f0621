# mock_routing/errors.py
# Error kinds raised by the router, the data store and the mutation validator.


class RoutingError(Exception):
    """Base class for every error the simulator raises."""


class NotFound(RoutingError):
    pass


class Conflict(RoutingError):
    """Duplicate content under another classification, or a second PUT of a versioned record."""


class VersionMismatch(RoutingError):
    pass


class IdentityMismatch(RoutingError):
    pass


class QuorumNotMet(RoutingError):
    pass


class MalformedRequest(RoutingError):
    pass


class UnsupportedAuthority(RoutingError):
    pass


class ChannelClosed(RoutingError):
    """Delivery target is gone. Swallowed by delivery tasks, never raised to callers."""


class DecodeError(RoutingError):
    pass
