"""Dev mode: reconcile once, then keep derived artifacts in sync while files change."""

from contentloom.dev.reconcile import Reconciler
from contentloom.dev.session import DevOptions, DevSession
from contentloom.dev.supervisor import LifecycleSupervisor
from contentloom.dev.watch import ChangeKind, PathEvent, ScopeState, WatchRouter, WatchScope

__all__ = [
    "ChangeKind",
    "DevOptions",
    "DevSession",
    "LifecycleSupervisor",
    "PathEvent",
    "Reconciler",
    "ScopeState",
    "WatchRouter",
    "WatchScope",
]
