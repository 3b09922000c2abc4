"""Attempt state machine for registry probes.

    Attempting(n) --success--> Success(n)
    Attempting(n) --failure--> Retry(n + 1, delay)   while n < max_attempts
    Attempting(n) --failure--> Exhausted(n)          once n == max_attempts

Kept free of I/O so the policy can be tested without network timing.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class Attempting:
    number: int


@dataclass(frozen=True)
class Retry:
    number: int
    delay: float


@dataclass(frozen=True)
class Success:
    attempts: int


@dataclass(frozen=True)
class Exhausted:
    attempts: int


AttemptOutcome = Success | Retry | Exhausted


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff: ``initial_delay * factor ** (n - 1)`` after attempt n."""

    max_attempts: int = 2
    initial_delay: float = 1.0
    factor: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def start(self) -> Attempting:
        return Attempting(number=1)

    def advance(self, state: Attempting, succeeded: bool) -> AttemptOutcome:
        if succeeded:
            return Success(attempts=state.number)
        if state.number >= self.max_attempts:
            return Exhausted(attempts=state.number)
        return Retry(
            number=state.number + 1,
            delay=self.initial_delay * self.factor ** (state.number - 1),
        )
