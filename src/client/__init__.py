"""Codicent client facade.

This module provides:
- CodicentClient: gated, retrying access to the Codicent service
- ClientConfig: immutable, mergeable configuration
- DataMessages: CRUD over JSON data messages
- Content helpers for tags, mentions and embedded data
"""

from src.client.config import ClientConfig
from src.client.content import (
    content_without_data,
    get_data,
    get_mentions,
    get_tags,
    is_data,
)
from src.client.data import DataMessages
from src.client.facade import CodicentClient, strip_reply_mentions
from src.client.models import FileInfo, Message


__all__ = [
    # Facade
    "CodicentClient",
    "ClientConfig",
    "DataMessages",
    "strip_reply_mentions",
    # Models
    "FileInfo",
    "Message",
    # Content helpers
    "content_without_data",
    "get_data",
    "get_mentions",
    "get_tags",
    "is_data",
]
