"""Per-document reconciliation decisions.

Without a ledger the policy is last-write-wins by operation: a download
pulls every remote document whose content differs from its local copy in
any byte (whitespace and line endings included), an upload pushes every
local document.  With a ledger (conflict detection enabled) a download
refuses to overwrite a document whose local and remote copies both moved
away from the last synced base; only that base comparison is normalised.
"""

from __future__ import annotations

from .ledger import SyncLedger
from .models import DocumentKey, DocumentPayload, LocalDocument, SyncAction


class ChangeDetector:
    """Compare local and remote document sets."""

    def __init__(self, ledger: SyncLedger | None = None) -> None:
        self._ledger = ledger or SyncLedger()

    def plan_download(
        self,
        local: dict[DocumentKey, LocalDocument],
        remote: dict[DocumentKey, DocumentPayload],
        ledger_state: dict | None = None,
    ) -> dict[DocumentKey, SyncAction]:
        """Decide PULL, SKIP or CONFLICT for every key.

        A key absent remotely is skipped; the local copy is never deleted.
        """
        plan: dict[DocumentKey, SyncAction] = {}
        for key in DocumentKey:
            theirs = remote.get(key)
            ours = local.get(key)
            if theirs is None:
                plan[key] = SyncAction.SKIP
            elif ours is None:
                plan[key] = SyncAction.PULL
            elif ours.content == theirs.content:
                plan[key] = SyncAction.SKIP
            elif ledger_state is not None and self._both_changed(
                ledger_state, key, ours.content, theirs.content
            ):
                plan[key] = SyncAction.CONFLICT
            else:
                plan[key] = SyncAction.PULL
        return plan

    def plan_upload(
        self, local: dict[DocumentKey, LocalDocument]
    ) -> dict[DocumentKey, SyncAction]:
        """PUSH every document present locally, SKIP the rest."""
        return {
            key: SyncAction.PUSH if key in local else SyncAction.SKIP
            for key in DocumentKey
        }

    def diverged(
        self,
        local: dict[DocumentKey, LocalDocument],
        remote: dict[DocumentKey, DocumentPayload],
    ) -> list[DocumentKey]:
        """Keys whose local and remote content differ (either side absent
        counts as different)."""
        out = []
        for key in DocumentKey:
            ours = local.get(key)
            theirs = remote.get(key)
            if ours is None and theirs is None:
                continue
            if ours is None or theirs is None or ours.content != theirs.content:
                out.append(key)
        return out

    def _both_changed(
        self, state: dict, key: DocumentKey, ours: str, theirs: str
    ) -> bool:
        base = self._ledger.base_hash(state, key)
        if base is None:
            return False
        return (
            self._ledger.content_hash(ours) != base
            and self._ledger.content_hash(theirs) != base
        )
