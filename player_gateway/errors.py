"""Exception hierarchy for the player gateway."""


class GatewayError(Exception):
    """Base class for all gateway errors."""


class GatewaySetupError(GatewayError):
    """The gateway cannot be started (socket, configuration or identity)."""


class ProtocolError(GatewayError):
    """A frame or payload received from the controller is malformed."""


class SubscriptionInvariantError(GatewayError):
    """An active device has a kind that cannot be sampled.

    Never caused by client input: the dispatcher refuses to subscribe such
    devices, so reaching this means the subscription state is corrupted.
    """
