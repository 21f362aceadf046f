"""
Storage and persistence modules
"""

from .artifact_type import ArtifactType
from .screen_bundle import ScreenBundle, screen_stats
from .section_storage import SectionStorage, timestamp_id

__all__ = [
    'ArtifactType',
    'ScreenBundle',
    'screen_stats',
    'SectionStorage',
    'timestamp_id',
]
