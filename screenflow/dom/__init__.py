"""
DOM serialization and tree model
"""

from .dom_node import DomNode, TEXT_TAG
from .dom_serializer import (
    DomSerializer,
    PageSnapshot,
    PAGE_META_JS,
    inject_base_href,
    load_dom_document,
)

__all__ = [
    'DomNode',
    'TEXT_TAG',
    'DomSerializer',
    'PageSnapshot',
    'PAGE_META_JS',
    'inject_base_href',
    'load_dom_document',
]
