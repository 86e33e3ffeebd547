"""
SeqHMM error taxonomy.

Structural problems (bad sequences, bad tables, malformed files) raise
InvalidInputError before any computation starts. Numerical failures found
while iterating raise NumericalInstabilityError with the iteration, position
and state where they were detected. Hitting the iteration cap is not fatal:
NonConvergenceWarning is issued and the best-so-far parameters are kept.
"""

from typing import Optional


class SeqHMMError(Exception):
    """Base class for all SeqHMM errors."""


class InvalidInputError(SeqHMMError, ValueError):
    """Empty sequence, unknown symbol, mismatched tables or malformed input."""


class NumericalInstabilityError(SeqHMMError, ArithmeticError):
    """A log-probability became NaN or +inf, or the sequence has zero probability."""

    def __init__(self, message: str, iteration: Optional[int] = None,
                 position: Optional[int] = None, state: Optional[int] = None):
        self.iteration = iteration
        self.position = position
        self.state = state

        context = []
        if iteration is not None:
            context.append(f"iteration={iteration}")
        if position is not None:
            context.append(f"position={position}")
        if state is not None:
            context.append(f"state={state}")
        if context:
            message = f"{message} ({', '.join(context)})"
        super().__init__(message)


class NonConvergenceWarning(RuntimeWarning):
    """Baum-Welch reached its iteration cap before the likelihood settled."""
