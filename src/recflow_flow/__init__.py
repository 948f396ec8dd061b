"""recflow runner - versioned records over files and in-memory buffers."""
from . import buffers, files, zerocopy
from .storage import DEFAULT_STORAGE, FileStorage
from .writer import VerifiedWriter, writer_for

__all__ = ["DEFAULT_STORAGE", "FileStorage", "VerifiedWriter", "buffers", "files", "writer_for", "zerocopy"]
