"""Worker engine: folder resolution, the folder mapping cache and the batch processor."""

from certshare.engine.folder_map import FolderMapping, build_folder_mapping
from certshare.engine.processor import BatchProcessor, build_processor
from certshare.engine.resolver import FolderResolver, Resolution, name_variations

__all__ = [
    "BatchProcessor",
    "FolderMapping",
    "FolderResolver",
    "Resolution",
    "build_folder_mapping",
    "build_processor",
    "name_variations",
]
