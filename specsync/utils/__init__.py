"""
Utility modules
"""

from specsync.utils.files import artifact_file_name, save_artifact
from specsync.utils.hashing import ArtifactHasher

__all__ = ['ArtifactHasher', 'artifact_file_name', 'save_artifact']
