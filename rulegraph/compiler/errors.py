from typing import Iterable, List


class CompilationError(ValueError):
    """The graph cannot be reduced to a single rule tree."""


class SchemaError(ValueError):
    """Rule JSON fails structural validation."""


class RuleValidationError(ValueError):
    """Raised by save/publish paths; carries every defect found, not just the first."""

    def __init__(self, errors: Iterable[str]):
        self.errors: List[str] = list(errors)
        super().__init__("; ".join(self.errors) or "rule is invalid")
