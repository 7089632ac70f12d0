"""Abstract base class for company/contact directory adapters."""

from abc import ABC, abstractmethod
from collections.abc import Iterable

from pydantic import BaseModel, Field

from targeting.core.schemas import Candidate, IdealCustomerProfile


class CompanyPage(BaseModel):
    """One page of a broad company search."""

    companies: list[Candidate] = Field(default_factory=list)
    total: int = 0
    page: int = 1


class DirectoryAdapter(ABC):
    """Base class that every directory adapter must implement."""

    @property
    @abstractmethod
    def directory_id(self) -> str:
        """Unique identifier for this directory (e.g. 'apollo')."""

    @abstractmethod
    def find_candidates(
        self,
        target: Candidate,
        exclude_ids: Iterable[str] = (),
        page: int = 1,
    ) -> list[Candidate]:
        """Return contacts at ``target`` not in ``exclude_ids``.

        An empty list is a normal outcome, never an exception.
        """

    @abstractmethod
    def search_companies(self, icp: IdealCustomerProfile, page: int = 1) -> CompanyPage:
        """Enumerate companies matching the ICP firmographics."""
