"""Ordered strategy chains for field recovery.

Each field is recovered by an explicit list of named, pure strategies
tried in a fixed order. The first strategy that returns a value wins and
its 1-based position becomes the candidate's confidence rank, so the
fallback path taken for any field can be read off the candidate.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from fayda_ocr.models import FieldCandidate, FieldName, FieldSource
from fayda_ocr.utils.logger import get_logger

logger = get_logger(__name__)

StrategyFunc = Callable[[str], Any | None]


@dataclass(frozen=True)
class Strategy:
    """A named text -> value function; ``None`` means no match."""

    name: str
    func: StrategyFunc


class StrategyChain:
    """Runs strategies in order until one produces a value.

    Args:
        field_name: Field the chain recovers.
        source: Source tag attached to produced candidates.
        strategies: Strategies in priority order.
    """

    def __init__(
        self,
        field_name: FieldName,
        source: FieldSource,
        strategies: list[Strategy],
    ) -> None:
        self.field_name = field_name
        self.source = source
        self.strategies = strategies

    @property
    def names(self) -> list[str]:
        return [s.name for s in self.strategies]

    def run(self, text: str) -> FieldCandidate | None:
        """Apply the chain to a text.

        Args:
            text: Text layer or OCR output to search.

        Returns:
            Candidate from the first successful strategy, or ``None``
            when every strategy fails. Empty strings count as failure.
        """
        for rank, strategy in enumerate(self.strategies, start=1):
            value = strategy.func(text)
            if value is None or value == "":
                continue
            logger.debug(
                "%s (%s): strategy %d/%d '%s' matched %r",
                self.field_name,
                self.source,
                rank,
                len(self.strategies),
                strategy.name,
                value,
            )
            return FieldCandidate(
                field=self.field_name,
                value=value,
                source=self.source,
                confidence=rank,
                strategy=strategy.name,
            )

        logger.debug("%s (%s): no strategy matched", self.field_name, self.source)
        return None
