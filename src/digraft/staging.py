"""Write buffer for the values produced by a single constructor call."""

import logging
from collections import defaultdict
from typing import Any

from digraft.domain import Key

logger = logging.getLogger(__name__)


class StagingWriter:
    """Records the values a constructor produced and defers storing them.

    Nothing reaches the owning scope until :meth:`commit` is called, so a
    constructor that fails part-way leaves no visible side effects.
    """

    def __init__(self):
        self.values: dict[Key, Any] = {}
        self.groups: dict[Key, list[Any]] = defaultdict(list)

    def set_value(self, key: Key, value: Any) -> None:
        self.values[key] = value

    def submit_group_value(self, key: Key, value: Any) -> None:
        self.groups[key].append(value)

    def commit(self, scope) -> None:
        """Store the staged values and group contributions in ``scope``."""
        for key, value in self.values.items():
            scope.set_value(key, value)
        for key, values in self.groups.items():
            for value in values:
                scope.submit_group_value(key, value)
        logger.debug(
            "Committed %d value(s) and %d group(s) to %r",
            len(self.values),
            len(self.groups),
            scope,
        )

    def commit_decorations(self, scope, decorator) -> None:
        """Store the staged values as the outputs of ``decorator`` in ``scope``."""
        for key, value in self.values.items():
            scope.set_decorated_value(decorator, key, value)
