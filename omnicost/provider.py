"""Base class for cost providers."""

import logging
from abc import ABC, abstractmethod
from typing import List

from .errors import ErrorSignature
from .models import CostRecord, FetchParams

logger = logging.getLogger(__name__)


class CostProvider(ABC):
    """Abstract base class for cloud cost providers."""

    name: str = ""

    # Failures that mean "these credentials are wrong" rather than "something broke"
    credential_errors: ErrorSignature = ErrorSignature()

    @abstractmethod
    def validate_credentials(self) -> bool:
        """
        Make one cheap API call to check the configured credentials.

        Returns:
            True if the call succeeded, False for recognized credential
            failures. Any other failure is raised.
        """
        pass

    @abstractmethod
    def fetch_costs(self, params: FetchParams) -> List[CostRecord]:
        """
        Fetch costs for the period and normalize them.

        Args:
            params: Date range, optional group-by dimension and filters.

        Returns:
            List of CostRecord, in vendor order.
        """
        pass

    def _check_credentials(self, probe) -> bool:
        """Run `probe`, converting recognized credential failures to False."""
        try:
            probe()
        except Exception as e:
            if self.credential_errors.matches(e):
                logger.error(f"Invalid {self.name} credentials: {e}")
                return False
            raise
        return True
