"""
odata_explorer.odata.counting - Count strategy negotiation
==========================================================

Services support neither, either or both of the two counting conventions
(``$count=true`` and ``$inlinecount=allpages``). The negotiator starts from
a configured strategy and steps down ``count -> inlinecount -> none`` when
the server rejects the parameter, remembering the outcome for the rest of
the resource session.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional, Tuple
import logging

logger = logging.getLogger("odata_explorer.pagination")

REJECTION_PHRASE = "not a valid"


class CountStrategy(str, Enum):
    COUNT = "count"
    INLINECOUNT = "inlinecount"
    NONE = "none"

    @classmethod
    def parse(cls, value: Any, default: Optional["CountStrategy"] = None) -> "CountStrategy":
        if isinstance(value, cls):
            return value
        key = str(value or "").strip().lower().lstrip("$")
        for strategy in cls:
            if strategy.value == key:
                return strategy
        if default is None:
            raise ValueError(f"Unknown count strategy: {value!r}")
        return default


# strictly forward, never back
_DOWNGRADES = {
    CountStrategy.COUNT: ("$count", CountStrategy.INLINECOUNT),
    CountStrategy.INLINECOUNT: ("$inlinecount", CountStrategy.NONE),
}


def query_parameter(strategy: CountStrategy) -> Optional[Tuple[str, str]]:
    """
    Counting query parameter for a strategy.

    Examples
    --------
    >>> query_parameter(CountStrategy.INLINECOUNT)
    ('$inlinecount', 'allpages')
    >>> query_parameter(CountStrategy.NONE) is None
    True
    """
    if strategy == CountStrategy.COUNT:
        return ("$count", "true")
    if strategy == CountStrategy.INLINECOUNT:
        return ("$inlinecount", "allpages")
    return None


class CountNegotiator:
    """
    Per-resource counting state.

    Parameters
    ----------
    initial : CountStrategy
        Strategy to start from and to return to on :meth:`reset`
    """

    def __init__(self, initial: CountStrategy = CountStrategy.INLINECOUNT) -> None:
        self.initial = CountStrategy.parse(initial)
        self.strategy = self.initial

    def query_parameter(self) -> Optional[Tuple[str, str]]:
        return query_parameter(self.strategy)

    def on_server_error(self, message: Optional[str]) -> bool:
        """
        Downgrade if ``message`` rejects the current counting parameter.

        Returns
        -------
        bool
            True when the strategy moved and the request should be retried,
            False when the error is not about counting and must propagate.
        """
        step = _DOWNGRADES.get(self.strategy)
        if step is None:
            return False

        text = (message or "").lower()
        option, fallback = step
        if option in text and REJECTION_PHRASE in text:
            logger.info("count strategy %s rejected by server, using %s",
                        self.strategy.value, fallback.value)
            self.strategy = fallback
            return True
        return False

    def reset(self) -> None:
        self.strategy = self.initial
