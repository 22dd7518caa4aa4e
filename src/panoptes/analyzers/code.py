"""Source code analyzer."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .base import AnalysisResult, ExtensionAnalyzer
from .errors import ExtractionError

LOGGER = logging.getLogger(__name__)

CONFIDENCE = 0.70

LANGUAGES: Dict[str, str] = {
    "py": "python",
    "js": "javascript",
    "mjs": "javascript",
    "jsx": "javascript",
    "ts": "typescript",
    "tsx": "typescript",
    "rs": "rust",
    "go": "go",
    "java": "java",
    "c": "c",
    "h": "c",
    "cpp": "cpp",
    "hpp": "cpp",
    "cs": "csharp",
    "rb": "ruby",
    "php": "php",
    "swift": "swift",
    "kt": "kotlin",
    "scala": "scala",
    "sh": "shell",
    "bash": "shell",
    "zsh": "shell",
    "sql": "sql",
    "html": "html",
    "css": "css",
    "scss": "css",
    "vue": "vue",
    "svelte": "svelte",
    "lua": "lua",
    "r": "r",
    "jl": "julia",
}

_FUNCTION_PATTERNS: Dict[str, re.Pattern[str]] = {
    "python": re.compile(r"^\s*(?:async\s+)?def\s+([A-Za-z_]\w*)"),
    "rust": re.compile(r"^\s*(?:pub(?:\([^)]*\))?\s+)?(?:async\s+)?fn\s+([A-Za-z_]\w*)"),
    "go": re.compile(r"^\s*func\s+(?:\([^)]*\)\s*)?([A-Za-z_]\w*)"),
    "javascript": re.compile(r"^\s*(?:export\s+)?(?:async\s+)?function\s+([A-Za-z_$][\w$]*)"),
    "typescript": re.compile(r"^\s*(?:export\s+)?(?:async\s+)?function\s+([A-Za-z_$][\w$]*)"),
    "shell": re.compile(r"^\s*(?:function\s+)?([A-Za-z_]\w*)\s*\(\)\s*\{"),
}
_ENTRY_POINTS = (
    "fn main",
    "def main",
    "function main",
    "static void main",
    "func main",
    "if __name__ ==",
)
_TYPE_PREFIXES = ("class ", "struct ", "interface ", "trait ", "enum ", "type ")
_IMPORT_PREFIXES = ("import ", "use ", "from ", "#include", "require", "using ")
_COMMENT_PREFIXES = ("//", "#", "--", "/*", "*")


@dataclass(slots=True)
class CodeStructure:
    """Line-level statistics of a source file."""

    lines: int = 0
    comment_lines: int = 0
    imports: int = 0
    types: int = 0
    functions: List[str] = field(default_factory=list)
    has_main: bool = False


def extract_structure(content: str, language: str) -> CodeStructure:
    """Count imports, types and functions and note whether an entry point exists."""
    structure = CodeStructure()
    pattern = _FUNCTION_PATTERNS.get(language)
    for line in content.splitlines():
        structure.lines += 1
        stripped = line.strip()
        if not stripped:
            continue
        if any(marker in stripped for marker in _ENTRY_POINTS):
            structure.has_main = True
        if stripped.startswith(_COMMENT_PREFIXES) and not stripped.startswith("#include"):
            structure.comment_lines += 1
            continue
        if stripped.startswith(_IMPORT_PREFIXES):
            structure.imports += 1
        if stripped.startswith(_TYPE_PREFIXES) or " class " in f" {stripped}":
            structure.types += 1
        if pattern is not None:
            match = pattern.match(line)
            if match:
                structure.functions.append(match.group(1))
    return structure


def _primary_function(functions: List[str]) -> Optional[str]:
    for name in functions:
        if name in ("main", "__init__") or name.startswith(("_", "test_")):
            continue
        return name
    return None


class CodeAnalyzer(ExtensionAnalyzer):
    """Describe what a source file does using a code model."""

    name = "code"
    extensions = tuple(LANGUAGES)
    default_priority = 60

    def analyze(self, path: Path) -> AnalysisResult:
        language = LANGUAGES.get(path.suffix.lower().lstrip("."), "code")
        try:
            content = path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            raise ExtractionError(f"Cannot read source file {path.name}: {exc}") from exc

        structure = extract_structure(content, language)
        metadata = {
            "language": language,
            "lines": structure.lines,
            "comment_lines": structure.comment_lines,
            "imports": structure.imports,
            "types": structure.types,
            "functions": structure.functions[:20],
            "has_main": structure.has_main,
        }

        name = ""
        if content.strip():
            prompt = self.render_prompt(
                self.config.prompts.code,
                content=content[: self.config.analyzers.code.max_chars],
                filename=path.name,
                details=language,
            )
            name = self.ask(self.config.inference.code_model, prompt)
        if not name:
            primary = _primary_function(structure.functions)
            name = self.clean(f"{primary}_{language}") if primary else f"{language}_code"

        tags = [language]
        if structure.has_main:
            tags.append("executable")
        return self.build_result(
            path, name, CONFIDENCE, category="Code", tags=tags, metadata=metadata
        )


__all__ = ["CodeAnalyzer", "CodeStructure", "LANGUAGES", "extract_structure"]
