import itertools
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable

from ._signer import Signer


class Keystore(ABC):
    """
    A source of signing keys.

    The account selection policy is up to the implementation;
    it must be safe to call from concurrently running invocations.
    """

    @abstractmethod
    def get_next_key(self) -> Signer:
        """Returns the signer to be used for the next invocation."""


class CycleKeystore(Keystore):
    """A keystore handing out the given signers in a round-robin fashion."""

    def __init__(self, signers: Iterable[Signer]):
        self._signers = tuple(signers)
        if not self._signers:
            raise ValueError("At least one signer is required")
        self._cycle = itertools.cycle(self._signers)
        self._lock = threading.Lock()

    @property
    def signers(self) -> tuple[Signer, ...]:
        """All the signers in this keystore."""
        return self._signers

    def get_next_key(self) -> Signer:
        with self._lock:
            return next(self._cycle)
