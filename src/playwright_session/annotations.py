"""Per-tab mapping from annotation numbers to element handles."""

import logging
from typing import Dict, Iterable, List, Optional

from playwright.async_api import ElementHandle
from playwright.async_api import Error as PlaywrightError

logger = logging.getLogger(__name__)


class AnnotationMap:
    """Arena of element handles labelled 1..N by the last annotate call.

    The map belongs to a single tab. It is replaced wholesale on every
    annotate call and emptied when the tab's main frame navigates. Both
    operations hand back the handles they dropped so the caller can release
    them in the page.
    """

    def __init__(self):
        self._handles: Dict[int, ElementHandle] = {}
        self.generation = 0

    def replace(self, handles: Dict[int, ElementHandle]) -> List[ElementHandle]:
        dropped = list(self._handles.values())
        self._handles = dict(handles)
        self.generation += 1
        return dropped

    def invalidate(self) -> List[ElementHandle]:
        dropped = list(self._handles.values())
        if dropped:
            logger.debug("Invalidating %d annotation handles", len(dropped))
        self._handles = {}
        self.generation += 1
        return dropped

    def get(self, element_id: int) -> Optional[ElementHandle]:
        return self._handles.get(element_id)

    def __len__(self) -> int:
        return len(self._handles)

    def __contains__(self, element_id: object) -> bool:
        return element_id in self._handles


async def dispose_handles(handles: Iterable[ElementHandle]) -> None:
    """Release element handles, ignoring ones the page already discarded."""
    for handle in handles:
        try:
            await handle.dispose()
        except PlaywrightError as exc:
            logger.debug("Failed to dispose annotation handle: %s", exc)
