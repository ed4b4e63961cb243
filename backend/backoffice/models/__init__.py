from .documents import Document, DocumentItem, ItemDetail, DocumentRemark, Active, Deleted, Lifecycle, ACTIVE
from .sequences import DocumentSequence

__all__ = [
    'Document', 'DocumentItem', 'ItemDetail', 'DocumentRemark',
    'Active', 'Deleted', 'Lifecycle', 'ACTIVE',
    'DocumentSequence',
]
