"""
Book Publishing Module

Chapter folder lifecycle with dense 1..N numbering, and EPub packaging.

Features:
- Insert/delete chapters with renumbering of the affected neighbours
- Per-book locking, resumable renumber plans
- Change detection against the last published date
- Deterministic EPub assembly with per-chapter metadata descriptors

Usage:
    from core.publishing.service import get_publishing_service

    service = get_publishing_service()
    service.create_chapter("9780140449136", 2, "Book II", "Homer")
    if service.check_needs_republish("9780140449136"):
        service.publish("9780140449136")
"""

__version__ = "1.0.0"
