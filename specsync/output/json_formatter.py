"""
JSON report formatter for specification results.
Publishes records, drift results and artifact hashes.
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from specsync import __version__
from specsync.core.pipeline import FunctionResult
from specsync.utils.hashing import ArtifactHasher


class ReportFormatter:
    """
    Formats pipeline results as structured JSON with integrity hashes.
    """

    SCHEMA_VERSION = "1.0.0"

    def __init__(self, source: str = "diff"):
        """
        Args:
            source: Label for the analyzed input (diff file, revision range)
        """
        self.source = source
        self.results: List[Dict[str, Any]] = []

    def add_result(self, result: FunctionResult, lean_file: Optional[str] = None) -> None:
        """
        Add one function's outcome.

        Args:
            result: Pipeline result for a function
            lean_file: Path of the written .lean file, if any
        """
        change = result.change
        entry: Dict[str, Any] = {
            "function": {
                "key": change.function_key,
                "name": change.function_name,
                "file": change.file_path,
                "line": change.start_line,
                "language": change.language,
                "change_type": change.change_type.value,
                "test_files": change.test_files,
                "degraded": result.facts.degraded
            },
            "facts": {
                "complexity": result.facts.complexity,
                "max_nesting_depth": result.facts.max_nesting_depth,
                "parameters": [p.name for p in result.facts.parameters],
                "guards": len(result.facts.guards),
                "loops": len(result.facts.loops),
                "early_returns": len(result.facts.early_returns)
            },
            "specification": result.record.to_dict(),
            "drift": result.drift.to_dict()
        }
        if result.error:
            entry["error"] = result.error

        if result.artifact is not None:
            lean_source = result.artifact.render()
            body_hash = result.record.body_hash or ""
            lean_hash = ArtifactHasher.hash_string(lean_source)
            artifacts = {
                "body_hash": body_hash,
                "lean_hash": lean_hash,
                "combined_hash": ArtifactHasher.compute_combined_hash(body_hash, lean_hash),
                "helper_lemmas": len(result.artifact.helper_lemmas),
                "performance_lemmas": len(result.artifact.performance_lemmas),
                "security_lemmas": len(result.artifact.security_lemmas)
            }
            if lean_file:
                artifacts["lean_file"] = lean_file
            entry["artifacts"] = artifacts

        self.results.append(entry)

    def generate(self) -> Dict[str, Any]:
        """
        Generate the complete report structure.

        Returns:
            Dictionary representing the JSON report
        """
        total = len(self.results)
        drifted = sum(1 for r in self.results if r["drift"]["has_drift"])
        degraded = sum(1 for r in self.results if r["function"]["degraded"])
        from_backend = sum(1 for r in self.results
                           if r["specification"]["provenance"] == "backend")

        return {
            "schema_version": self.SCHEMA_VERSION,
            "metadata": {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "source": self.source,
                "generator_version": f"specsync-{__version__}"
            },
            "summary": {
                "total_functions": total,
                "drift_detected": drifted,
                "degraded": degraded,
                "backend_specifications": from_backend,
                "synthesized_specifications": total - from_backend
            },
            "results": self.results
        }

    def to_json_string(self, indent: int = 2) -> str:
        return json.dumps(self.generate(), indent=indent, ensure_ascii=False)

    def save_to_file(self, output_path: str, indent: int = 2) -> None:
        """
        Save the report to a file.

        Args:
            output_path: Path to output JSON file
            indent: Number of spaces for indentation
        """
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump(self.generate(), f, indent=indent, ensure_ascii=False)
