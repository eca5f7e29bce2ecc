"""Memo from formula text to parsed AST.

The text is the key, so entries never go stale. ASTs are immutable and can
be shared between concurrent evaluations.
"""

import logging
import threading
from collections import OrderedDict

from formulaforge.formulas.parser import ASTNode, parse

logger = logging.getLogger(__name__)


class ParseCache:
    """Thread-safe LRU cache of parsed formulas.

    Parse errors are not cached. ``maxsize=0`` means unbounded.

    Example:
        cache = ParseCache(maxsize=1024)
        ast = cache.get("Sum(orders.amount)")
    """

    def __init__(self, maxsize: int = 4096):
        self.maxsize = maxsize
        self.hits = 0
        self.misses = 0
        self._entries: OrderedDict[str, ASTNode] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, source: str) -> ASTNode:
        """Return the AST for ``source``, parsing it on first use.

        Raises:
            ParseError: If the text does not parse
        """
        with self._lock:
            ast = self._entries.get(source)
            if ast is not None:
                self._entries.move_to_end(source)
                self.hits += 1
                return ast

        # Parse outside the lock; two threads racing on the same text produce
        # equal trees and the second insert wins.
        ast = parse(source)

        with self._lock:
            self.misses += 1
            self._entries[source] = ast
            self._entries.move_to_end(source)
            if self.maxsize and len(self._entries) > self.maxsize:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Evicted formula from parse cache: %r", evicted)
        return ast

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, source: object) -> bool:
        return source in self._entries
