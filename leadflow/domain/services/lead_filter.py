"""
Lead Filter & Pagination
Pure derivations of the visible lead list from the working set.
"""
import math
from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Sequence, Tuple

from leadflow.domain.errors import ValidationError
from leadflow.domain.models.lead import Lead

ALL = "all"
DEFAULT_PAGE_SIZE = 10

DEFAULT_SEARCH_FIELDS: Tuple[str, ...] = ("customer_name", "email", "preferred_area")
CLOSED_DEAL_SEARCH_FIELDS: Tuple[str, ...] = DEFAULT_SEARCH_FIELDS + ("assigned_to",)

# Budget choices offered by the filter bar
BUDGET_CHOICES: Tuple[str, ...] = (
    "0-50000",
    "50000-100000",
    "100000-250000",
    "250000-500000",
    "500000-1000000",
    "1000000-",
)


@dataclass(frozen=True)
class BudgetRange:
    """Closed range, or open-ended when maximum is None"""
    minimum: float
    maximum: Optional[float] = None
    
    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["BudgetRange"]:
        """
        Parse "min-max" or "min-". Returns None for the "all" sentinel.
        
        Raises:
            ValidationError: If the range is malformed
        """
        if value is None or not value.strip() or value.strip() == ALL:
            return None
        
        low, sep, high = value.strip().partition("-")
        try:
            minimum = float(low)
            maximum = float(high) if high.strip() else None
        except ValueError:
            raise ValidationError(f"Invalid budget range: {value}", {"budget": value})
        
        if not sep or minimum < 0 or (maximum is not None and maximum < minimum):
            raise ValidationError(f"Invalid budget range: {value}", {"budget": value})
        
        return cls(minimum=minimum, maximum=maximum)
    
    def contains(self, budget: float) -> bool:
        if budget < self.minimum:
            return False
        return self.maximum is None or budget <= self.maximum


@dataclass(frozen=True)
class FilterState:
    """Filter bar state; every field defaults to 'match everything'"""
    search_term: str = ""
    budget: str = ALL
    status: str = ALL
    area: str = ALL
    
    def __post_init__(self):
        # Malformed budgets are rejected on construction
        BudgetRange.parse(self.budget)


def _matches_search(lead: Lead, term: str, search_fields: Sequence[str]) -> bool:
    for name in search_fields:
        value = getattr(lead, name, "") or ""
        if term in str(value).lower():
            return True
    return False


def apply_filters(
    leads: Sequence[Lead],
    state: FilterState,
    search_fields: Sequence[str] = DEFAULT_SEARCH_FIELDS,
) -> List[Lead]:
    """
    Filter leads; all active filters combine with AND.
    
    Args:
        leads: Working set
        state: Filter bar state
        search_fields: Fields the text search looks at
    
    Returns:
        Matching leads in working-set order
    """
    term = state.search_term.strip().lower()
    budget_range = BudgetRange.parse(state.budget)
    
    results = []
    for lead in leads:
        if term and not _matches_search(lead, term, search_fields):
            continue
        if budget_range and not budget_range.contains(lead.budget):
            continue
        if state.status != ALL and lead.deal_status.value != state.status:
            continue
        if state.area != ALL and lead.preferred_area != state.area:
            continue
        results.append(lead)
    
    return results


def unique_areas(leads: Sequence[Lead]) -> List[str]:
    """Distinct non-empty preferred areas across the full working set"""
    return list(dict.fromkeys(lead.preferred_area for lead in leads if lead.preferred_area))


@dataclass
class Page:
    """One window of the filtered list"""
    items: List[Lead]
    page: int
    page_size: int
    total_items: int
    total_pages: int


def total_pages(count: int, page_size: int) -> int:
    return math.ceil(count / page_size) if count else 0


def slice_page(items: Sequence[Lead], page: int, page_size: int) -> List[Lead]:
    end = page * page_size
    return list(items[end - page_size:end])


class LeadListView:
    """
    Stateful filtered and paginated view over a lead source.
    
    The view never mutates leads; it re-derives from the source whenever
    the filters or the working set change, and every re-derivation resets
    the page to 1.
    """
    
    def __init__(
        self,
        source: Callable[[], Sequence[Lead]],
        page_size: int = DEFAULT_PAGE_SIZE,
        search_fields: Sequence[str] = DEFAULT_SEARCH_FIELDS,
        base_state: Optional[FilterState] = None,
    ):
        self._source = source
        self.page_size = page_size
        self.search_fields = tuple(search_fields)
        self._base_state = base_state or FilterState()
        self.state = self._base_state
        self.current_page = 1
        self._filtered: List[Lead] = []
        self.refresh()
    
    @property
    def filtered(self) -> List[Lead]:
        return list(self._filtered)
    
    @property
    def total_pages(self) -> int:
        return total_pages(len(self._filtered), self.page_size)
    
    def refresh(self) -> None:
        """Re-derive from the current working set"""
        self._filtered = apply_filters(self._source(), self.state, self.search_fields)
        self.current_page = 1
    
    def set_filters(self, state: FilterState) -> None:
        self.state = state
        self.refresh()
    
    def update_filters(self, **changes) -> bool:
        """
        Apply only the filter fields that differ from the current state.
        
        Returns:
            True if anything changed (and the page was reset)
        """
        changes = {k: v for k, v in changes.items() if v is not None and getattr(self.state, k) != v}
        if not changes:
            return False
        self.set_filters(replace(self.state, **changes))
        return True
    
    def reset_filters(self) -> None:
        self.set_filters(self._base_state)
    
    def paginate(self, page_number: int) -> bool:
        """
        Move to page_number if it is in range; otherwise leave the page alone.
        
        Returns:
            True if the page changed
        """
        if 0 < page_number <= self.total_pages:
            self.current_page = page_number
            return True
        return False
    
    def page(self) -> Page:
        return Page(
            items=slice_page(self._filtered, self.current_page, self.page_size),
            page=self.current_page,
            page_size=self.page_size,
            total_items=len(self._filtered),
            total_pages=self.total_pages,
        )
    
    def areas(self) -> List[str]:
        return unique_areas(self._source())
