"""Exceptions raised by the vault aggregation pipeline."""


class VaultsWatchError(Exception):
    """Base class for all errors raised by this package."""


class RegistryUnavailable(VaultsWatchError):
    """The off-chain registry could not be reached or returned a malformed payload."""


class RemoteBatchFailure(VaultsWatchError):
    """A whole batch of contract calls failed (network or node error)."""


class InvalidAddress(VaultsWatchError, ValueError):
    """The argument is not a syntactically valid chain address."""


class NotFound(VaultsWatchError, LookupError):
    """The address is valid but not part of the endorsed vault set."""


class VaultUnavailable(NotFound):
    """The vault is in the registry but was dropped because its on-chain data could not be fetched."""


class IncompleteVault(VaultsWatchError):
    """A VaultBuilder was asked to build before all required parts were set."""
