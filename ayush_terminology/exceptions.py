class TerminologyError(Exception):
    """Base class for errors raised by the terminology service."""


class UnknownCodeSystemError(TerminologyError, ValueError):
    def __init__(self, value):
        super().__init__(f"Unknown code system: {value!r}")
        self.value = value


class InvalidConfidenceError(TerminologyError, ValueError):
    pass


class BundleValidationError(TerminologyError, ValueError):
    """Raised before assembling a bundle when a precondition is not met."""


class InvalidTransitionError(TerminologyError):
    def __init__(self, current, action):
        super().__init__(f"Cannot {action} a diagnosis entry in state '{current}'")
        self.current = current
        self.action = action
