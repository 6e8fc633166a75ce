"""Tests for ChangeDetector planning."""

from __future__ import annotations

from specsync.sync.detector import ChangeDetector
from specsync.sync.ledger import SyncLedger
from specsync.sync.models import (
    DocumentKey,
    DocumentPayload,
    LocalDocument,
    SyncAction,
)

REQ, DESIGN, TASKS = DocumentKey.REQUIREMENTS, DocumentKey.DESIGN, DocumentKey.TASKS


def _local(**docs: str) -> dict:
    return {
        DocumentKey(name): LocalDocument(
            key=DocumentKey(name), content=content, last_modified="2026-01-01T00:00:00+00:00"
        )
        for name, content in docs.items()
    }


def _remote(**docs: str) -> dict:
    return {DocumentKey(name): DocumentPayload(content=c) for name, c in docs.items()}


def _ledger_state(**docs: str) -> dict:
    ledger = SyncLedger()
    state: dict = {"entries": {}}
    for name, content in docs.items():
        ledger.record(state, DocumentKey(name), content)
    return state


class TestPlanDownload:
    def test_absent_remote_skipped(self):
        plan = ChangeDetector().plan_download(_local(design="mine"), {})
        assert plan == {REQ: SyncAction.SKIP, DESIGN: SyncAction.SKIP, TASKS: SyncAction.SKIP}

    def test_missing_local_pulled(self):
        plan = ChangeDetector().plan_download({}, _remote(requirements="R"))
        assert plan[REQ] is SyncAction.PULL

    def test_identical_skipped(self):
        plan = ChangeDetector().plan_download(_local(design="D"), _remote(design="D"))
        assert plan[DESIGN] is SyncAction.SKIP

    def test_whitespace_only_remote_change_pulled(self):
        plan = ChangeDetector().plan_download(
            _local(design="# D\nbody\n", tasks="A\nB\n"),
            _remote(design="# D\nbody  \n", tasks="A\r\nB\r\n"),
        )
        assert plan[DESIGN] is SyncAction.PULL
        assert plan[TASKS] is SyncAction.PULL

    def test_whitespace_only_change_against_ledger_base_pulled(self):
        plan = ChangeDetector().plan_download(
            _local(design="# D\nbody\n"),
            _remote(design="# D\r\nbody\r\n"),
            _ledger_state(design="# D\nbody\n"),
        )
        assert plan[DESIGN] is SyncAction.PULL

    def test_remote_wins_without_ledger(self):
        plan = ChangeDetector().plan_download(_local(design="mine"), _remote(design="theirs"))
        assert plan[DESIGN] is SyncAction.PULL

    def test_both_changed_is_conflict(self):
        plan = ChangeDetector().plan_download(
            _local(design="mine"),
            _remote(design="theirs"),
            _ledger_state(design="base"),
        )
        assert plan[DESIGN] is SyncAction.CONFLICT

    def test_only_remote_changed_pulls(self):
        plan = ChangeDetector().plan_download(
            _local(design="base"),
            _remote(design="theirs"),
            _ledger_state(design="base"),
        )
        assert plan[DESIGN] is SyncAction.PULL

    def test_only_local_changed_pulls(self):
        # remote still at base: download restores it (last write wins by operation)
        plan = ChangeDetector().plan_download(
            _local(design="mine"),
            _remote(design="base"),
            _ledger_state(design="base"),
        )
        assert plan[DESIGN] is SyncAction.PULL

    def test_no_base_entry_pulls(self):
        plan = ChangeDetector().plan_download(
            _local(design="mine"), _remote(design="theirs"), {"entries": {}}
        )
        assert plan[DESIGN] is SyncAction.PULL


class TestPlanUpload:
    def test_push_present_only(self):
        plan = ChangeDetector().plan_upload(_local(requirements="R", tasks="T"))
        assert plan == {REQ: SyncAction.PUSH, DESIGN: SyncAction.SKIP, TASKS: SyncAction.PUSH}


class TestDiverged:
    def test_diverged_keys(self):
        keys = ChangeDetector().diverged(
            _local(requirements="R", design="mine"),
            _remote(requirements="R", design="theirs", tasks="T"),
        )
        assert keys == [DESIGN, TASKS]

    def test_nothing_anywhere(self):
        assert ChangeDetector().diverged({}, {}) == []
