"""Building trainer and normalizer specs from command-line style arguments."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any

from piecetrain.specs import (
    FieldNotFoundError,
    ModelType,
    NormalizerSpec,
    SpecError,
    TrainerSpec,
    set_proto_field,
)

logger = logging.getLogger("piecetrain")

_MODEL_TYPES: dict[str, ModelType] = {
    "unigram": ModelType.UNIGRAM,
    "bpe": ModelType.BPE,
    "word": ModelType.WORD,
    "char": ModelType.CHAR,
}

# Minimum log level numbers as given on the command line, lowest first.
_LOG_LEVELS = (logging.INFO, logging.WARNING, logging.ERROR, logging.CRITICAL)

_STRICT_INT_RE = re.compile(r"\s*[+-]?\d+\s*")

_pretokenizer: Any = None


def parse_args(args: str) -> dict[str, str]:
    """Parse a space separated ``--key=value`` string into a mapping.

    A leading ``--`` is optional, a flag without ``=`` gets an empty value,
    and the first occurrence of a key wins.
    """
    kwargs: dict[str, str] = {}
    if not args:
        return kwargs
    for arg in args.split(" "):
        if arg.startswith("--"):
            arg = arg[2:]
        key, sep, value = arg.partition("=")
        kwargs.setdefault(key, value if sep else "")
    return kwargs


def _set_min_log_level(value: str) -> None:
    if _STRICT_INT_RE.fullmatch(value) is None:
        raise SpecError(f'cannot parse "{value}" as int.')
    level = int(value)
    index = min(max(level, 0), len(_LOG_LEVELS) - 1)
    logger.setLevel(_LOG_LEVELS[index])


def merge_specs_from_args(
    args: str | Mapping[str, str],
    trainer_spec: TrainerSpec,
    normalizer_spec: NormalizerSpec,
    denormalizer_spec: NormalizerSpec,
) -> tuple[TrainerSpec, NormalizerSpec, NormalizerSpec]:
    """Override fields of the three specs from ``args``, in place.

    ``args`` is either a command-line style string or a mapping of field
    names to text values. The updated specs are also returned.
    """
    if trainer_spec is None:
        raise SpecError("`trainer_spec` must not be null.")
    if normalizer_spec is None:
        raise SpecError("`normalizer_spec` must not be null.")
    if denormalizer_spec is None:
        raise SpecError("`denormalizer_spec` must not be null.")

    kwargs = parse_args(args) if isinstance(args, str) else dict(args)

    for key, value in kwargs.items():
        if key == "normalization_rule_name":
            normalizer_spec.name = value
            continue
        if key == "denormalization_rule_tsv":
            denormalizer_spec.normalization_rule_tsv = value
            denormalizer_spec.add_dummy_prefix = False
            denormalizer_spec.remove_extra_whitespaces = False
            denormalizer_spec.escape_whitespaces = False
            continue
        if key == "minloglevel":
            _set_min_log_level(value)
            continue

        try:
            set_proto_field(key, value, trainer_spec)
            continue
        except FieldNotFoundError as trainer_missing:
            try:
                set_proto_field(key, value, normalizer_spec)
            except FieldNotFoundError:
                raise trainer_missing from None

    return trainer_spec, normalizer_spec, denormalizer_spec


def populate_model_type_from_string(type_name: str, trainer_spec: TrainerSpec) -> None:
    """Set ``trainer_spec.model_type`` from a name such as ``"bpe"``."""
    model_type = _MODEL_TYPES.get(type_name.lower())
    if model_type is None:
        raise SpecError(f'"{type_name}" is not found in TrainerSpec')
    trainer_spec.model_type = model_type


def set_pretokenizer_for_training(pretokenizer: Any) -> None:
    """Install a global pre-tokenizer used while extracting pieces."""
    global _pretokenizer
    _pretokenizer = pretokenizer


def get_pretokenizer_for_training() -> Any:
    """Return the installed pre-tokenizer, or None if there is none."""
    return _pretokenizer