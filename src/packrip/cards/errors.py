"""Error taxonomy for window resolution and draws."""


class RipError(Exception):
    """Base class for pack rip failures."""


class ConfigurationError(RipError):
    """Missing or invalid collection configuration; aborts a whole cycle."""


class EmptyPoolError(RipError):
    """No rarity in the ladder has any card available."""


class PersistError(RipError):
    """A ledger write failed for one viewer."""


class BroadcastError(RipError):
    """A result notification could not be delivered."""
