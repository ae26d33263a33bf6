"""
Exceptions raised when the engine is handed input that breaks its contract.
"""


class FwRuleEngineError(Exception):
    """Base class for every error raised by fwrule_engine."""


class PolicyContractError(FwRuleEngineError, ValueError):
    """The policy snapshot does not have the shape the engine consumes."""


class UnknownRuleKindError(PolicyContractError):
    """A rule carries a kind (or category) the engine does not know how to order."""

    def __init__(self, kind, context: str = ""):
        self.kind = kind
        where = f" in {context}" if context else ""
        super().__init__(f"Unknown rule kind {kind!r}{where}")
