"""
Abstract base class for provider fetch clients
"""

from abc import ABC, abstractmethod
from typing import Optional
from schemas.refresh import FetchResult, Window


class FetchClient(ABC):
    """
    Retrieves room offers for one stay window from an external provider.

    Implementations must not raise for provider or transport failures;
    those come back as `FetchResult(ok=False, error_message=...)`.
    """

    provider: str = ""

    @abstractmethod
    async def fetch(self, locator: str, window: Window) -> FetchResult:
        """
        Fetch the offers for a property.

        Args:
            locator: Provider-specific property reference from the source
            window: Stay window to price

        Returns:
            Structured fetch result
        """
        pass

    def validate_locator(self, locator: str) -> Optional[str]:
        """Return an error message if the locator cannot be used, else None"""
        if not locator or not locator.strip():
            return "empty source locator"
        return None
