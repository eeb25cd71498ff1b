class ArduinoControllerError(RuntimeError):
    """Base class for all controller errors."""
    pass


class DiscoveryError(ArduinoControllerError):
    """Raised when the platform could not enumerate attached accessories."""
    pass


class AccessoryNotFoundError(ArduinoControllerError):
    """Raised when no attached accessory matches the expected protocol."""
    def __init__(self, message, accessories=()):
        super().__init__(message)
        self.accessories = list(accessories)  # list[AccessoryDescriptor]


class SessionCreationError(ArduinoControllerError):
    """Raised when a session could not be opened against an accessory."""
    pass


class StreamError(ArduinoControllerError):
    """Raised or reported when the byte stream fails mid-session."""
    pass


class ConfigError(ArduinoControllerError):
    """Raised when a configuration file cannot be parsed."""
    pass
