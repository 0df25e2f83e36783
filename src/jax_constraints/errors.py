"""Exceptions raised while building constraint systems.

Errors of the kinematics provider or of the Lie-group primitives are not
wrapped: they reach the caller unchanged.
"""


class ConstraintConfigurationError(ValueError):
    """A mask, an index set or a dimension does not fit the objects it is used with.

    Raised when the offending object is built or first used, never deferred.
    """


class EliminationCycleError(ConstraintConfigurationError):
    """Explicit functions whose outputs transitively feed their own inputs."""

    def __init__(self, names):
        self.names = tuple(names)
        super().__init__(
            "explicit functions form an elimination cycle: " + " -> ".join(self.names))
