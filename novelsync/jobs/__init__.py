"""Chunk build jobs."""

from novelsync.jobs.clock import Clock, SystemClock
from novelsync.jobs.controller import ChunkJobController

__all__ = ["ChunkJobController", "Clock", "SystemClock"]
