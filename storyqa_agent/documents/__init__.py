from .document_manager import DocumentManager, content_hash, normalize_content

__all__ = ["DocumentManager", "content_hash", "normalize_content"]
