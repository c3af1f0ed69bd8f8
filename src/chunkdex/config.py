"""chunkdex configuration and build-manifest loader.

Priority (high → low):
  1. CLI flags           (handled at call site, not in this module)
  2. Environment variables  (CHUNKDEX_EMBEDDING_MODEL, CHUNKDEX_TOKENIZER_MODEL)
  3. Per-project chunkdex.yaml
  4. Global ~/.chunkdex/config.yaml  (model defaults only, no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load(), never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from chunkdex.db.models import Work

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".chunkdex"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "chunkdex.yaml"

# Key names that look like secrets are forbidden in global config.
# Does NOT match legitimate config keys like max_tokens, overlap_tokens.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"  # api_key, api-key, api_secret, apikey
    r"|_token$"                  # github_token, access_token (suffix)
    r"|^token$"                  # exactly "token" (standalone)
    r"|_secret$"                 # client_secret (suffix)
    r"|^secret$"                 # exactly "secret" (standalone)
    r"|passw(?:ord|d)"           # password, passwd
    r"|credential",              # credential, credentials
    re.IGNORECASE,
)

# Known top-level sections; unknown keys produce a warning
_KNOWN_SECTIONS: frozenset[str] = frozenset(["embedding", "tokenizer", "chunking", "search"])

_INPUT_TYPES: frozenset[str] = frozenset(["markdown", "text"])


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file or manifest contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class EmbeddingCfg:
    """Embedding model configuration (chunkdex.yaml: embedding:)."""

    model: str = "openai/text-embedding-3-small"
    batch_size: int = 25
    num_retries: int = 3


@dataclass
class TokenizerCfg:
    """Tokenizer used for chunk sizing (chunkdex.yaml: tokenizer:)."""

    model: str = "gpt-4o"


@dataclass
class MarkdownChunkingCfg:
    """Budgets for the semantic markdown path."""

    max_tokens: int = 200
    target_tokens: int = 200
    overlap_tokens: int = 20


@dataclass
class TextChunkingCfg:
    """Budgets for the plain text path; exact, since its splitting is simple."""

    max_tokens: int = 256
    overlap_tokens: int = 85


@dataclass
class ChunkingCfg:
    """Per-type chunking configuration (chunkdex.yaml: chunking:)."""

    markdown: MarkdownChunkingCfg = field(default_factory=MarkdownChunkingCfg)
    text: TextChunkingCfg = field(default_factory=TextChunkingCfg)


@dataclass
class SearchCfg:
    """Search display configuration (chunkdex.yaml: search:)."""

    display_limit: int = 25


@dataclass
class ChunkdexConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    tokenizer: TokenizerCfg = field(default_factory=TokenizerCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    search: SearchCfg = field(default_factory=SearchCfg)


@dataclass(frozen=True)
class ManifestInput:
    """One document to chunk (manifest: input[])."""

    type: str  # markdown | text
    work: Work
    title: str
    file: Path


@dataclass(frozen=True)
class Manifest:
    """A corpus build: ordered inputs plus the database path to create."""

    output: Path
    inputs: tuple[ManifestInput, ...]


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}'; ignored.",
                UserWarning,
                stacklevel=4,
            )


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Cannot parse '{path}': {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"'{path}' must contain a mapping at the top level")
    return data


def _positive_int(value: Any, name: str, minimum: int = 1) -> int:
    try:
        result = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from exc
    if result < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {result}")
    return result


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _cfg_from_dict(data: dict[str, Any]) -> ChunkdexConfig:
    """Build a *ChunkdexConfig* from a merged raw YAML dict."""
    cfg = ChunkdexConfig()

    if "embedding" in data:
        e = data["embedding"] or {}
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", cfg.embedding.model)),
            batch_size=_positive_int(e.get("batch_size", cfg.embedding.batch_size), "embedding.batch_size"),
            num_retries=_positive_int(
                e.get("num_retries", cfg.embedding.num_retries), "embedding.num_retries", minimum=0
            ),
        )

    if "tokenizer" in data:
        t = data["tokenizer"] or {}
        cfg.tokenizer = TokenizerCfg(model=str(t.get("model", cfg.tokenizer.model)))

    if "chunking" in data:
        ch = data["chunking"] or {}
        md = ch.get("markdown") or {}
        tx = ch.get("text") or {}
        d_md, d_tx = cfg.chunking.markdown, cfg.chunking.text
        cfg.chunking = ChunkingCfg(
            markdown=MarkdownChunkingCfg(
                max_tokens=_positive_int(md.get("max_tokens", d_md.max_tokens), "chunking.markdown.max_tokens"),
                target_tokens=_positive_int(
                    md.get("target_tokens", d_md.target_tokens), "chunking.markdown.target_tokens"
                ),
                overlap_tokens=_positive_int(
                    md.get("overlap_tokens", d_md.overlap_tokens), "chunking.markdown.overlap_tokens", minimum=0
                ),
            ),
            text=TextChunkingCfg(
                max_tokens=_positive_int(tx.get("max_tokens", d_tx.max_tokens), "chunking.text.max_tokens"),
                overlap_tokens=_positive_int(
                    tx.get("overlap_tokens", d_tx.overlap_tokens), "chunking.text.overlap_tokens", minimum=0
                ),
            ),
        )

    if "search" in data:
        s = data["search"] or {}
        cfg.search = SearchCfg(
            display_limit=_positive_int(s.get("display_limit", cfg.search.display_limit), "search.display_limit"),
        )

    return cfg


def _apply_env_overrides(cfg: ChunkdexConfig) -> ChunkdexConfig:
    """Apply CHUNKDEX_* environment variable overrides (layer 2)."""
    if model := os.environ.get("CHUNKDEX_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if model := os.environ.get("CHUNKDEX_TOKENIZER_MODEL"):
        cfg.tokenizer.model = model
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> ChunkdexConfig:
    """Load and return a merged *ChunkdexConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *chunkdex.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If a file is not valid YAML, global config contains
            API-key-like fields, or a value has the wrong type.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    # Layer 1: global config
    if global_path.exists():
        raw_global = _read_yaml(global_path)
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    # Layer 2: per-project config
    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = _read_yaml(project_cfg_path)
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _cfg_from_dict(merged)

    # Layer 3: env var overrides
    return _apply_env_overrides(cfg)


def load_manifest(path: Path) -> Manifest:
    """Load and validate a build manifest (YAML or JSON).

    Format::

        output: db.json
        input:
          - {type: markdown, work: "The Python Tutorial", title: "...", file: a.md}

    Relative ``file`` and ``output`` paths resolve against the manifest's
    directory.

    Raises:
        ConfigError: If the manifest is unreadable or malformed, an input file
            is missing, or the output path already exists.
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigError(f"Manifest '{path}' not found")
    data = _read_yaml(path)
    base = path.parent

    output = data.get("output")
    if not isinstance(output, str) or not output:
        raise ConfigError("Invalid manifest: 'output' must be a non-empty string")
    output_path = _resolve(base, output)
    if output_path.exists():
        raise ConfigError(f"Invalid manifest: expected output file '{output_path}' to NOT exist")

    raw_inputs = data.get("input")
    if not isinstance(raw_inputs, list) or not raw_inputs:
        raise ConfigError("Invalid manifest: 'input' must be a non-empty list")

    inputs: list[ManifestInput] = []
    for i, raw in enumerate(raw_inputs):
        inputs.append(_manifest_input(raw, i, base))

    return Manifest(output=output_path, inputs=tuple(inputs))


def _manifest_input(raw: Any, index: int, base: Path) -> ManifestInput:
    where = f"input[{index}]"
    if not isinstance(raw, dict):
        raise ConfigError(f"Invalid manifest: {where} must be a mapping")
    for key in ("type", "work", "title", "file"):
        if not isinstance(raw.get(key), str):
            raise ConfigError(f"Invalid manifest: {where}.{key} must be a string")
    if raw["type"] not in _INPUT_TYPES:
        raise ConfigError(
            f"Invalid manifest: {where}.type must be one of {sorted(_INPUT_TYPES)}, got {raw['type']!r}"
        )
    try:
        work = Work(raw["work"])
    except ValueError as exc:
        known = ", ".join(repr(w.value) for w in Work)
        raise ConfigError(f"Invalid manifest: {where}.work must be one of {known}") from exc
    file = _resolve(base, raw["file"])
    if not file.is_file():
        raise ConfigError(f"Invalid manifest: {where}.file '{file}' does not exist")
    return ManifestInput(type=raw["type"], work=work, title=raw["title"], file=file)


def _resolve(base: Path, value: str) -> Path:
    p = Path(value).expanduser()
    return p if p.is_absolute() else base / p
