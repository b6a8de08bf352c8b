class BedPackerError(Exception):
    """Base for all bedpacker exceptions."""

    pass


class ConfigurationError(BedPackerError, ValueError):
    """Invalid numeric input or configuration, raised before any simulation work."""

    pass


class PackerStateError(BedPackerError, RuntimeError):
    """A single-shot packer was asked to run again."""

    pass


class LayoutFileError(BedPackerError):
    """Job or layout file could not be read or is malformed."""

    pass
