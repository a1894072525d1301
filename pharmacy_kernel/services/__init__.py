"""Kernel services. Every writer here flushes only; callers own the transaction."""
