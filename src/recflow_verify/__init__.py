"""recflow verify - offline audit of stored records."""
from .audit import scan_records, summarize, write_evidence

__all__ = ["scan_records", "summarize", "write_evidence"]
