"""Reconciliation of local chunks with the remote note store."""

from novelsync.sync.reconciler import SyncReconciler, chunk_note_title
from novelsync.sync.service import SyncService
from novelsync.sync.tags import extract_tags, note_tags

__all__ = ["SyncReconciler", "SyncService", "chunk_note_title", "extract_tags", "note_tags"]
