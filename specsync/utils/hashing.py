"""
Integrity hashing for specification reports and Lean artifacts.
"""

import hashlib
from typing import Optional


class ArtifactHasher:
    """
    Computes SHA-256 hashes so a published report can be checked against
    the function body and the Lean file it was produced from.
    """

    @staticmethod
    def hash_string(content: str) -> str:
        """
        Compute SHA-256 hash of a string.

        Args:
            content: String to hash

        Returns:
            Hexadecimal hash string
        """
        return hashlib.sha256(content.encode('utf-8')).hexdigest()

    @staticmethod
    def hash_file(file_path: str) -> Optional[str]:
        """
        Compute SHA-256 hash of a file.

        Returns:
            Hexadecimal hash string, or None if the file can't be read
        """
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                content = f.read()
        except OSError:
            return None
        return ArtifactHasher.hash_string(content)

    @staticmethod
    def compute_combined_hash(body_hash: str, lean_hash: str) -> str:
        """Single hash covering both the source body and its Lean rendering"""
        combined = f"{body_hash}|{lean_hash}"
        return hashlib.sha256(combined.encode('utf-8')).hexdigest()

    @staticmethod
    def verify_integrity(entry: dict, lean_source: Optional[str] = None,
                         lean_file: Optional[str] = None) -> dict:
        """
        Check a report entry against a Lean artifact.

        Args:
            entry: Function entry from a ReportFormatter report
            lean_source: Rendered Lean text
            lean_file: Path to the written .lean file (used when no text is given)

        Returns:
            {'valid': bool, 'lean_match': bool or None, 'combined_match': bool}
        """
        artifacts = entry.get('artifacts', {})

        lean_hash = None
        if lean_source is not None:
            lean_hash = ArtifactHasher.hash_string(lean_source)
        elif lean_file:
            lean_hash = ArtifactHasher.hash_file(lean_file)

        lean_match = None
        if lean_hash is not None:
            lean_match = lean_hash == artifacts.get('lean_hash')

        combined_match = ArtifactHasher.compute_combined_hash(
            artifacts.get('body_hash', ''),
            artifacts.get('lean_hash', '')
        ) == artifacts.get('combined_hash')

        return {
            'valid': combined_match and lean_match is not False,
            'lean_match': lean_match,
            'combined_match': combined_match
        }
