"""FocusGuard - per-tab website and content visit tracking agent."""

__version__ = "0.1.0"
