"""
Lifecycle of a diagnosis entry while a clinician builds a problem list:

    unselected -> selected -> annotated -> added -> saved
                                                 -> discarded

Saved and discarded entries are final. Correcting a saved diagnosis means
recording a new entry in a new session.
"""
import enum
from typing import List, Optional

from . import fhir
from .exceptions import InvalidTransitionError

CLINICAL_STATUSES = ("active", "recurrence", "relapse", "inactive", "remission", "resolved")


class EntryState(str, enum.Enum):
    UNSELECTED = "unselected"
    SELECTED = "selected"
    ANNOTATED = "annotated"
    ADDED = "added"
    SAVED = "saved"
    DISCARDED = "discarded"


class DiagnosisDraft:
    def __init__(self):
        self.state = EntryState.UNSELECTED
        self.code: Optional[str] = None
        self.display: Optional[str] = None
        self.translation = None
        self.notes = ""
        self.clinical_status = "active"
        self.recorded_at: Optional[str] = None

    def _require(self, action, *states):
        if self.state not in states:
            raise InvalidTransitionError(self.state.value, action)

    def select(self, code: str, display: Optional[str] = None, translation=None):
        """Choose (or re-choose) the NAMASTE code and its resolved translation."""
        self._require("select", EntryState.UNSELECTED, EntryState.SELECTED, EntryState.ANNOTATED)
        if not code:
            raise ValueError("A code is required to select a diagnosis")
        self.code = code
        self.display = display
        self.translation = translation
        if self.state == EntryState.UNSELECTED:
            self.state = EntryState.SELECTED
        return self

    def annotate(self, notes: str = "", clinical_status: str = "active"):
        self._require("annotate", EntryState.SELECTED, EntryState.ANNOTATED)
        if clinical_status not in CLINICAL_STATUSES:
            raise ValueError(f"Unknown clinical status: {clinical_status!r}")
        self.notes = notes or ""
        self.clinical_status = clinical_status
        self.state = EntryState.ANNOTATED
        return self

    @property
    def editable(self) -> bool:
        return self.state in (EntryState.UNSELECTED, EntryState.SELECTED, EntryState.ANNOTATED)


class ProblemList:
    """Drafts added during one session, until they are saved together."""

    def __init__(self):
        self._entries: List[DiagnosisDraft] = []
        self.saved = False

    @property
    def entries(self) -> List[DiagnosisDraft]:
        return [e for e in self._entries if e.state != EntryState.DISCARDED]

    def add(self, draft: DiagnosisDraft) -> DiagnosisDraft:
        if self.saved:
            raise InvalidTransitionError(EntryState.SAVED.value, "add to")
        draft._require("add", EntryState.SELECTED, EntryState.ANNOTATED)
        draft.recorded_at = fhir.now_iso()
        draft.state = EntryState.ADDED
        self._entries.append(draft)
        return draft

    def discard(self, draft: DiagnosisDraft):
        draft._require("discard", EntryState.ADDED)
        draft.state = EntryState.DISCARDED

    def save(self) -> List[DiagnosisDraft]:
        if self.saved:
            raise InvalidTransitionError(EntryState.SAVED.value, "save")
        entries = self.entries
        for draft in entries:
            draft.state = EntryState.SAVED
        self.saved = True
        return entries
