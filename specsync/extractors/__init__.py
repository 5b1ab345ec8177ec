"""
Control-flow fact extraction for changed functions
"""

import logging
from typing import Optional

from ..core.errors import ParseFailure
from ..core.models import ControlFlowFacts, FunctionChange
from ..segmenter import language_for_path
from . import tree_sitter_extractor
from .python_extractor import extract_python_facts
from .tree_sitter_extractor import extract_tree_sitter_facts

logger = logging.getLogger(__name__)

__all__ = ["ControlFlowExtractor", "extract_python_facts", "extract_tree_sitter_facts"]


class ControlFlowExtractor:
    """Parses a function's enclosing file and extracts structural facts"""

    def supports(self, language: Optional[str]) -> bool:
        return language == "python" or tree_sitter_extractor.supports(language)

    def extract(self, change: FunctionChange, source: str,
                language: Optional[str] = None) -> ControlFlowFacts:
        """
        Extract facts for a changed function from the current file text.

        Never raises for unparsable files, unsupported languages or missing
        functions: those yield degraded facts (empty collections, complexity 1).
        """
        language = language or change.language or language_for_path(change.file_path)
        try:
            return self._extract(change, source, language)
        except ParseFailure as e:
            logger.info("Degrading facts for %s: %s", change.function_key, e.reason)
            return ControlFlowFacts.degraded_facts()
        except (RecursionError, UnicodeError) as e:
            logger.warning("Degrading facts for %s: %s", change.function_key, e)
            return ControlFlowFacts.degraded_facts()

    def _extract(self, change: FunctionChange, source: str, language: Optional[str]) -> ControlFlowFacts:
        if not source:
            raise ParseFailure(change.file_path, change.function_name, "no source available")
        if language == "python":
            return extract_python_facts(source, change.function_name, change.file_path)
        if tree_sitter_extractor.supports(language):
            return extract_tree_sitter_facts(source, change.function_name, language, change.file_path)
        raise ParseFailure(change.file_path, change.function_name, f"unsupported language {language!r}")
