"""Services for the FocusGuard agent."""

from focusguard.services.dispatcher import EventDispatcher, EventQueue
from focusguard.services.identity_cache import IdentityCache
from focusguard.services.metadata_service import PageMetadataService
from focusguard.services.reconciler import SessionReconciler
from focusguard.services.registrar import RemoteRegistrar
from focusguard.services.session_store import SessionStore
from focusguard.services.tab_registry import TabRegistry

__all__ = [
    "EventDispatcher",
    "EventQueue",
    "IdentityCache",
    "PageMetadataService",
    "RemoteRegistrar",
    "SessionReconciler",
    "SessionStore",
    "TabRegistry",
]
