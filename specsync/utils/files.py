"""
File I/O utilities
"""

import os
import re
from typing import Optional

from ..core.models import TheoremArtifact

DEFAULT_OUTPUT_DIR = "./specs"

_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]+")


def artifact_file_name(artifact: TheoremArtifact) -> str:
    """File name for an artifact, derived from its function key when known"""
    key = artifact.metadata.get("function_key") or artifact.function_name
    return _UNSAFE.sub("_", key).strip("_") + ".lean"


def save_artifact(artifact: TheoremArtifact,
                  output_dir: Optional[str] = None,
                  file_name: Optional[str] = None) -> str:
    """
    Write a rendered Lean file to disk.

    Args:
        artifact: Theorem artifact to render
        output_dir: Target directory (created if missing)
        file_name: Optional file name, defaults to the sanitized function key

    Returns:
        Path of the written file
    """
    directory = output_dir or DEFAULT_OUTPUT_DIR
    os.makedirs(directory, exist_ok=True)
    path = os.path.join(directory, file_name or artifact_file_name(artifact))

    with open(path, "w", encoding="utf-8") as f:
        f.write(artifact.render())

    return path
