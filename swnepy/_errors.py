# pylint: disable=C0114, C0115
class SWNEError(Exception):
    """Base class of all errors raised by swnepy."""


class InvalidConfigurationError(SWNEError, ValueError):
    """Unknown method tag, bad parameter value or mismatched identifiers."""


class DegenerateInputError(SWNEError, ValueError):
    """Input that makes a stage ill-defined, e.g. a zero-range vector."""


class ShapeMismatchError(SWNEError, ValueError):
    pass


class ConvergenceError(SWNEError, RuntimeError):
    pass
