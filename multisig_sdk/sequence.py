"""
Sequence Guard - hands out executor sequence ids without reuse.

The authoritative counter lives on-chain and only advances when a
submission is mined, so two flows that read it concurrently would both see
the same value. Flows against one executor are therefore serialized with a
per-executor lock, and ids already submitted from this process are never
issued again even if the chain has not caught up yet.
"""
import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Optional, Set, Tuple

from .chains import profile_for
from .exceptions import SequenceReplayError

logger = logging.getLogger(__name__)

_Key = Tuple[int, str]


class SequenceReservation:
    """The sequence id held by one flow while it owns the executor lock."""

    def __init__(self, guard: "SequenceGuard", chain_id: int, executor_address: str, sequence: int):
        self._guard = guard
        self.chain_id = chain_id
        self.executor_address = executor_address
        self.sequence = sequence
        self.consumed = False

    def refresh(self) -> int:
        """
        Re-read the counter after a stale-sequence rejection.

        The counter may not have moved yet when the rejection is seen, so the
        new id is never lower than the rejected one plus one.

        Returns:
            The new sequence id, always greater than the one it replaces
        """
        previous = self.sequence
        self.consumed = False
        on_chain = self._guard.next_sequence(self.chain_id, self.executor_address)
        self.sequence = max(on_chain, previous + 1)
        logger.info(f"Sequence for {self.executor_address} refreshed {previous} -> {self.sequence}")
        return self.sequence

    def consume(self) -> None:
        """Record that a transaction carrying this id was broadcast."""
        self._guard.mark_consumed(self.chain_id, self.executor_address, self.sequence)
        self.consumed = True

    def __repr__(self) -> str:
        return (
            f"SequenceReservation(chain_id={self.chain_id}, executor={self.executor_address}, "
            f"sequence={self.sequence}, consumed={self.consumed})"
        )


class SequenceGuard:
    """
    Issues sequence ids per (chain id, executor address).

    Args:
        chain_client: Object exposing ``get_counter_value(executor_address)``
        lock_timeout: Seconds to wait for the executor lock in ``reserve``
            (None waits forever)
        logger: Optional logger instance
    """

    def __init__(self, chain_client, lock_timeout: Optional[float] = None, logger: Optional[logging.Logger] = None):
        self.chain_client = chain_client
        self.lock_timeout = lock_timeout
        self.logger = logger or logging.getLogger(__name__)
        self._state_lock = threading.RLock()
        self._executor_locks: Dict[_Key, threading.Lock] = {}
        self._consumed: Dict[_Key, Set[int]] = {}
        self._highest_consumed: Dict[_Key, int] = {}

    @staticmethod
    def _key(chain_id: int, executor_address: str) -> _Key:
        profile_for(chain_id)
        return int(chain_id), executor_address.lower()

    def _lock_for(self, key: _Key) -> threading.Lock:
        with self._state_lock:
            lock = self._executor_locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._executor_locks[key] = lock
            return lock

    def next_sequence(self, chain_id: int, executor_address: str) -> int:
        """
        Return the next sequence id to use for an executor.

        Args:
            chain_id: Chain the executor is deployed on
            executor_address: Multisig executor address

        Consumed ids below the on-chain counter are forgotten here; only the
        highest submitted id is kept for them.

        Returns:
            ``max(on-chain next id, highest id submitted from here + 1)``

        Raises:
            UnsupportedChain: If the chain id is not supported
            ChainReadError: If the counter could not be read
        """
        key = self._key(chain_id, executor_address)
        on_chain = self.chain_client.get_counter_value(executor_address)
        with self._state_lock:
            consumed = self._consumed.get(key)
            if consumed:
                consumed.difference_update([s for s in consumed if s < on_chain])
            highest = self._highest_consumed.get(key)
        sequence = on_chain if highest is None else max(on_chain, highest + 1)
        if sequence != on_chain:
            self.logger.debug(
                f"On-chain sequence {on_chain} for {executor_address} is behind local submissions, using {sequence}"
            )
        return sequence

    def mark_consumed(self, chain_id: int, executor_address: str, sequence: int) -> None:
        """
        Record a sequence id as submitted.

        Raises:
            SequenceReplayError: If the id was already recorded
        """
        key = self._key(chain_id, executor_address)
        with self._state_lock:
            consumed = self._consumed.setdefault(key, set())
            if sequence in consumed:
                raise SequenceReplayError(
                    f"Sequence {sequence} for {executor_address} on chain {chain_id} was already submitted"
                )
            consumed.add(sequence)
            self._highest_consumed[key] = max(sequence, self._highest_consumed.get(key, sequence))

    def is_consumed(self, chain_id: int, executor_address: str, sequence: int) -> bool:
        key = self._key(chain_id, executor_address)
        with self._state_lock:
            return sequence in self._consumed.get(key, ())

    @contextmanager
    def reserve(self, chain_id: int, executor_address: str) -> Iterator[SequenceReservation]:
        """
        Hold the executor lock for a whole flow and yield its sequence id.

        Example:
            with guard.reserve(137, executor) as reservation:
                ...sign and submit reservation.sequence...
                reservation.consume()

        Raises:
            TimeoutError: If the lock was not acquired within ``lock_timeout``
            ChainReadError: If the counter could not be read
        """
        key = self._key(chain_id, executor_address)
        lock = self._lock_for(key)
        timeout = -1 if self.lock_timeout is None else self.lock_timeout
        if not lock.acquire(timeout=timeout):
            raise TimeoutError(f"Timed out waiting for the sequence lock of {executor_address}")
        try:
            sequence = self.next_sequence(chain_id, executor_address)
            self.logger.debug(f"Reserved sequence {sequence} for {executor_address} on chain {chain_id}")
            yield SequenceReservation(self, chain_id, executor_address, sequence)
        finally:
            lock.release()
