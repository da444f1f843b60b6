from __future__ import annotations


class ResolutionCache:
    """Session-scoped mapping of original selectors to healed selectors.

    One instance belongs to one resolver. Values are concrete selectors only,
    never element handles.
    """

    def __init__(self) -> None:
        self._entries: dict[str, str] = {}

    def get(self, selector: str) -> str | None:
        return self._entries.get(selector)

    def put(self, selector: str, healed_selector: str) -> None:
        if not healed_selector:
            raise ValueError("healed_selector must not be empty")
        self._entries[selector] = healed_selector

    def evict(self, selector: str) -> str | None:
        return self._entries.pop(selector, None)

    def __contains__(self, selector: object) -> bool:
        return selector in self._entries

    def __len__(self) -> int:
        return len(self._entries)
