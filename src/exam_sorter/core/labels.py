"""
Page label assignments.

A label assignment maps 1-based page numbers to the ordered list of problem
numbers a page answers. The NOT_A_PROBLEM sentinel marks a page that belongs
to no problem; it never shares a page with positive problem numbers.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Iterator, List, Mapping, Optional, Tuple

from exam_sorter.config.constants import NOT_A_PROBLEM
from exam_sorter.core.exceptions import InvalidInputError


class LabelAction(str, Enum):
    """Label events a client can send for a single page."""
    ADD = "add"
    REMOVE = "remove"
    REMOVE_LAST_INSTANCE = "remove_last_instance"
    POP = "pop"
    CLEAR = "clear"


def is_problem_number(value: int) -> bool:
    """True for values that file a page under a problem."""
    return value > 0


class LabelAssignment:
    """
    Mutable page -> labels mapping with the sentinel rules enforced.

    Pages with no labels have no entry. Iteration is always in page order.

    Usage:
        labels = LabelAssignment()
        labels.add(1, 3)
        labels.add(2, NOT_A_PROBLEM)
        list(labels.pairs())  # [(1, 3)]
    """

    def __init__(self, pages: Optional[Mapping[int, List[int]]] = None):
        self._pages: Dict[int, List[int]] = {}
        if pages:
            for page, problems in pages.items():
                for problem in problems:
                    self.add(page, problem, allow_duplicates=True)

    # ==================== MUTATION ====================

    def add(
        self,
        page: int,
        problem: int,
        allow_duplicates: bool = False,
        replace_sentinel: bool = True
    ) -> bool:
        """
        Assign a problem number (or the sentinel) to a page.

        Args:
            page: 1-based page number
            problem: Positive problem number or NOT_A_PROBLEM
            allow_duplicates: Keep repeated numbers on the same page
            replace_sentinel: A positive number replaces a sentinel already
                on the page; when False the add is ignored instead

        Returns:
            True if the assignment changed
        """
        _check_page(page)
        current = self._pages.get(page, [])

        if problem == NOT_A_PROBLEM:
            if current == [NOT_A_PROBLEM]:
                return False
            self._pages[page] = [NOT_A_PROBLEM]
            return True

        if not is_problem_number(problem):
            return False

        if NOT_A_PROBLEM in current:
            if not replace_sentinel:
                return False
            current = []

        if problem in current and not allow_duplicates:
            return False

        self._pages[page] = current + [problem]
        return True

    def remove(self, page: int, problem: int) -> bool:
        """Remove every occurrence of a label from a page."""
        current = self._pages.get(page)
        if not current or problem not in current:
            return False
        self._set(page, [p for p in current if p != problem])
        return True

    def remove_last_instance(self, page: int, problem: int) -> bool:
        """Remove only the last occurrence of a label from a page."""
        current = self._pages.get(page)
        if not current or problem not in current:
            return False
        index = len(current) - 1 - current[::-1].index(problem)
        self._set(page, current[:index] + current[index + 1:])
        return True

    def pop(self, page: int) -> Optional[int]:
        """Remove and return the most recently added label of a page."""
        current = self._pages.get(page)
        if not current:
            return None
        self._set(page, current[:-1])
        return current[-1]

    def clear(self, page: int) -> bool:
        """Drop every label of a page."""
        return self._pages.pop(page, None) is not None

    def apply(self, action: LabelAction, page: int, problem: Optional[int] = None) -> bool:
        """
        Apply a single label event.

        Returns:
            True if the assignment changed

        Raises:
            InvalidInputError: If the action needs a problem number and none was given
        """
        action = LabelAction(action)
        if action in (LabelAction.ADD, LabelAction.REMOVE, LabelAction.REMOVE_LAST_INSTANCE):
            if problem is None:
                raise InvalidInputError(f"Action '{action.value}' requires a problem number")

        if action == LabelAction.ADD:
            return self.add(page, problem)
        if action == LabelAction.REMOVE:
            return self.remove(page, problem)
        if action == LabelAction.REMOVE_LAST_INSTANCE:
            return self.remove_last_instance(page, problem)
        if action == LabelAction.POP:
            return self.pop(page) is not None
        return self.clear(page)

    def _set(self, page: int, problems: List[int]) -> None:
        if problems:
            self._pages[page] = problems
        else:
            del self._pages[page]

    # ==================== QUERIES ====================

    def get(self, page: int) -> List[int]:
        """Labels of a page (empty list when unlabeled)."""
        return list(self._pages.get(page, []))

    def pages(self) -> List[int]:
        """Labeled pages in ascending order."""
        return sorted(self._pages)

    def pairs(self) -> Iterator[Tuple[int, int]]:
        """
        Yield (page, problem) for every label that files a page.

        Pages in ascending order, labels in assignment order, sentinel skipped.
        """
        for page in self.pages():
            for problem in self._pages[page]:
                if is_problem_number(problem):
                    yield page, problem

    def problems(self) -> List[int]:
        """Distinct problem numbers used, ascending."""
        return sorted({problem for _, problem in self.pairs()})

    def missing_pages(self, page_count: int) -> List[int]:
        """Pages of a document of `page_count` pages that carry no label."""
        return [page for page in range(1, page_count + 1) if page not in self._pages]

    def copy(self) -> "LabelAssignment":
        """Independent snapshot."""
        clone = LabelAssignment()
        clone._pages = {page: list(problems) for page, problems in self._pages.items()}
        return clone

    # ==================== WIRE FORMAT ====================

    @classmethod
    def from_wire(cls, data: Optional[Mapping[str, List[int]]]) -> "LabelAssignment":
        """
        Build an assignment from its JSON form ({"<page>": [int, ...]}).

        Each list is replayed through add(), so a list mixing the sentinel
        with problem numbers resolves to whichever came last.

        Raises:
            InvalidInputError: If a page key is not a positive integer
        """
        assignment = cls()
        for key, problems in (data or {}).items():
            try:
                page = int(key)
            except (TypeError, ValueError):
                raise InvalidInputError(f"Invalid page number: {key!r}", {"page": str(key)})
            if page < 1:
                raise InvalidInputError(f"Invalid page number: {key!r}", {"page": str(key)})
            if problems is None:
                continue
            for problem in problems:
                try:
                    problem = int(problem)
                except (TypeError, ValueError):
                    raise InvalidInputError(
                        f"Invalid problem number on page {page}: {problem!r}",
                        {"page": page}
                    )
                assignment.add(page, problem, allow_duplicates=True)
        return assignment

    def to_wire(self) -> Dict[str, List[int]]:
        """JSON form with string page keys, in page order."""
        return {str(page): list(self._pages[page]) for page in self.pages()}

    # ==================== DUNDER ====================

    def __len__(self) -> int:
        return len(self._pages)

    def __bool__(self) -> bool:
        return bool(self._pages)

    def __contains__(self, page: object) -> bool:
        return page in self._pages

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LabelAssignment):
            return NotImplemented
        return self._pages == other._pages

    def __repr__(self) -> str:
        return f"LabelAssignment({self.to_wire()})"


def _check_page(page: int) -> None:
    if page < 1:
        raise InvalidInputError(f"Invalid page number: {page}", {"page": page})
