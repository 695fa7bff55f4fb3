"""Row source registry."""

from __future__ import annotations

from tradereview.config import SourceType
from tradereview.sources.base import RowSource

# Lazy registry: classes are imported on first use.
SOURCE_CLASSES: dict[SourceType, str] = {
    SourceType.FILE: "tradereview.sources.files.FileRowSource",
    SourceType.MEMORY: "tradereview.sources.memory.MemoryRowSource",
}


def create_source(source_type: SourceType, **kwargs) -> RowSource:
    """Instantiate a source by type, forwarding kwargs to its constructor."""
    import importlib

    dotted = SOURCE_CLASSES[source_type]
    module_path, cls_name = dotted.rsplit(".", 1)
    module = importlib.import_module(module_path)
    cls = getattr(module, cls_name)
    return cls(**kwargs)


__all__ = ["RowSource", "SOURCE_CLASSES", "create_source"]
