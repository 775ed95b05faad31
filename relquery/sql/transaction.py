"""Atomic execution of ordered statement sequences."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import Any

from relquery.sql.query import resolve_adapter
from relquery.validation import TransactionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Step:
    """One step of a Transaction.

    ``action`` is a Query, a Command, a nested Transaction or a callable that
    receives the results of all previous steps and returns one of those (or
    None to skip). The result of a step marked ``result=True`` becomes the
    visible result of the transaction.
    """

    action: Any
    result: bool = False


@dataclass(frozen=True)
class Transaction:
    """An ordered sequence of steps executed atomically.

    Example:
        >>> tx = transaction(
        ...     insert("people", {"name": "Jane"}, returning="id"),
        ...     lambda results: insert("users", {"person_id": results[0]["id"]}, returning="id"),
        ... )
        >>> tx.execute(adapter)
        [{'id': 1}, {'id': 1}]
    """

    steps: tuple = ()
    adapter: Any = field(default=None, compare=False, repr=False)
    combine: Callable[[list], Any] | None = None
    propagate: bool = False

    def __post_init__(self):
        object.__setattr__(self, "steps", tuple(s if isinstance(s, Step) else Step(s) for s in self.steps))

    def then(self, action: Any, result: bool = False) -> "Transaction":
        """Return a Transaction with one more step."""
        step = action if isinstance(action, Step) else Step(action, result)
        return replace(self, steps=self.steps + (step,))

    def with_adapter(self, adapter: Any) -> "Transaction":
        return replace(self, adapter=adapter)

    def execute(self, adapter: Any = None, propagate: bool | None = None) -> Any:
        """Run every step in one database transaction.

        Args:
            adapter: Adapter to run against instead of the transaction's own
            propagate: Join an active transaction (defaults to ``self.propagate``)

        Returns:
            ``combine(results)`` if set, else the marked step's result, else
            the list of all step results
        """
        adapter = resolve_adapter(adapter, self.adapter)
        propagate = self.propagate if propagate is None else propagate

        results: list = []
        marked = None
        has_marked = False
        logger.debug(f"Executing transaction with {len(self.steps)} steps")
        with adapter.transaction(propagate=propagate):
            for step in self.steps:
                value = self._run(step.action, results, adapter)
                results.append(value)
                if step.result:
                    marked = value
                    has_marked = True

        if self.combine is not None:
            return self.combine(results)
        if has_marked:
            return marked
        return results

    def _run(self, action: Any, results: list, adapter: Any) -> Any:
        if callable(action):
            action = action(list(results))
        if action is None:
            return None
        if isinstance(action, Transaction):
            return action.execute(adapter, propagate=True)
        if not hasattr(action, "execute"):
            raise TransactionError(f"Cannot execute transaction step {action!r}")
        return action.execute(adapter=adapter)


def transaction(*steps, adapter: Any = None, combine: Callable[[list], Any] | None = None) -> Transaction:
    """Build a Transaction from steps given in execution order."""
    return Transaction(steps=tuple(steps), adapter=adapter, combine=combine)
