"""Load apply documents from YAML files and glob patterns."""

import glob
import os
import re
from pathlib import Path
from typing import List, Sequence, Union, Tuple
import yaml
from .models import ApplyDocument, Resource, ResourceMetadata
from .normalizer import normalize_document, merge_documents
from ..utils.errors import LoadError
from ..utils.logging import get_logger

logger = get_logger("manifest.loader")

# ${VAR} or ${VAR:-default}
_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")
_GLOB_CHARS = set("*?[")


def expand_sources(sources: Sequence[Union[str, Path]]) -> List[Path]:
    """
    Resolve paths, directories and glob patterns into an ordered, de-duplicated file list.

    Raises:
        LoadError: If a path is missing or a pattern matches nothing
    """
    files: List[Path] = []
    seen = set()
    for source in sources:
        text = str(source)
        if _GLOB_CHARS.intersection(text):
            matches = sorted(glob.glob(text, recursive=True))
            matches = [m for m in matches if Path(m).is_file()]
            if not matches:
                raise LoadError(
                    f"No files match pattern: {text}",
                    suggestion="Check the glob pattern and the current directory",
                )
            candidates = [Path(m) for m in matches]
        else:
            path = Path(text)
            if not path.exists():
                raise LoadError(
                    f"Manifest file not found: {text}",
                    suggestion="Please check the file path and ensure the file exists.",
                )
            if path.is_dir():
                candidates = sorted(p for p in path.iterdir() if p.is_file() and p.suffix in (".yaml", ".yml"))
                if not candidates:
                    raise LoadError(f"No .yaml or .yml files in directory: {text}")
            elif not path.is_file():
                raise LoadError(f"Path is not a file: {text}")
            else:
                candidates = [path]

        for candidate in candidates:
            resolved = candidate.resolve()
            if resolved not in seen:
                seen.add(resolved)
                files.append(candidate)
    return files


def substitute_env(text: str, strict: bool = False, source: str = "<input>") -> str:
    """
    Expand ${VAR} and ${VAR:-default} references from the environment.

    Undefined variables without a default stay as written unless `strict`.

    Raises:
        LoadError: In strict mode, for an undefined variable without default
    """
    def _replace(match):
        name, default = match.group(1), match.group(2)
        value = os.environ.get(name)
        if value is not None:
            return value
        if default is not None:
            return default
        if strict:
            raise LoadError(
                f"{source}: environment variable '{name}' is not set",
                suggestion=f"Export {name} or use ${{{name}:-default}}",
            )
        return match.group(0)

    return _ENV_PATTERN.sub(_replace, text)


def parse_yaml_documents(text: str, source: str) -> List[Tuple[ResourceMetadata, List[Resource]]]:
    """Split a YAML stream into normalized documents, skipping empty ones."""
    try:
        raw_documents = list(yaml.safe_load_all(text))
    except yaml.YAMLError as e:
        raise LoadError(
            f"Invalid YAML in {source}: {e}",
            suggestion="Please ensure the file is valid YAML.",
        )

    parts = []
    for index, raw in enumerate(raw_documents):
        if raw is None:
            continue
        parts.append(normalize_document(raw, f"{source}#{index}"))
    return parts


def load_manifests(sources: Sequence[Union[str, Path]], strict_env: bool = False) -> ApplyDocument:
    """
    Load one or more manifest files into a single ApplyDocument.

    Args:
        sources: File paths and/or glob patterns
        strict_env: Fail on undefined ${VAR} references

    Returns:
        Merged ApplyDocument with resources ordered by (kind rank, name)

    Raises:
        LoadError: If any file is missing, malformed, or structurally invalid
    """
    if not sources:
        raise LoadError("No manifest files given", suggestion="Pass one or more files with -f")

    parts = []
    for path in expand_sources(sources):
        try:
            with open(path, 'r', encoding='utf-8') as f:
                text = f.read()
        except OSError as e:
            raise LoadError(
                f"Error reading manifest file {path}: {e}",
                suggestion="Please check file permissions and try again.",
            )
        text = substitute_env(text, strict=strict_env, source=str(path))
        file_parts = parse_yaml_documents(text, str(path))
        if not file_parts:
            logger.warning(f"Manifest file {path} contains no documents")
        parts.extend(file_parts)

    document = merge_documents(parts)
    logger.info(f"Loaded {len(document.resources)} resource(s) from {len(parts)} document(s)")
    return document


def load_manifest_text(text: str, source: str = "<string>", strict_env: bool = False) -> ApplyDocument:
    """Load an ApplyDocument from YAML text."""
    text = substitute_env(text, strict=strict_env, source=source)
    return merge_documents(parse_yaml_documents(text, source))
