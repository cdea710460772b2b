class UPnPError(Exception):
    """Base class for every error raised while talking to a gateway."""


class NoGatewayFound(UPnPError):
    pass


class InvalidLocation(UPnPError):
    pass


class InternalIPUnresolvable(UPnPError):
    pass


class InvalidDeviceAddress(InternalIPUnresolvable):
    """The router advertised a base host that is not an IP literal."""


class DescriptionError(UPnPError):
    pass


class RemoteActionFailed(UPnPError):
    pass


class SOAPFault(RemoteActionFailed):
    """
    Fault returned by the router for a control action.
    error_code is the UPnP errorCode (e.g. 718 ConflictInMappingEntry) when present.
    """
    def __init__(self, action, error_code=None, error_description=None):
        self.action = action
        self.error_code = error_code
        self.error_description = error_description
        super().__init__(f"{action} failed: UPnP error {error_code} ({error_description})")
