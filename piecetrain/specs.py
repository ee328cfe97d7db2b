"""Trainer and normalizer specifications, with text parsing and printing."""

from __future__ import annotations

import dataclasses
import enum
import re
from dataclasses import dataclass, field
from typing import Any, Callable


class SpecError(ValueError):
    """Raised when a spec field value cannot be parsed or is invalid."""


class FieldNotFoundError(SpecError):
    """Raised when a spec has no field with the requested name."""

    def __init__(self, field_name: str, spec_name: str) -> None:
        super().__init__(f'unknown field name "{field_name}" in {spec_name}.')
        self.field_name = field_name
        self.spec_name = spec_name


class ModelType(enum.IntEnum):
    """Segmentation algorithm used by the trainer."""

    UNIGRAM = 1
    BPE = 2
    WORD = 3
    CHAR = 4


class PieceType(enum.IntEnum):
    """Kind of a vocabulary piece."""

    NORMAL = 1
    UNKNOWN = 2
    CONTROL = 3
    USER_DEFINED = 4
    UNUSED = 5
    BYTE = 6


class _Kind(enum.Enum):
    STRING = "string"
    REPEATED_STRING = "repeated string"
    BYTES = "bytes"
    INT32 = "int32"
    UINT64 = "uint64"
    DOUBLE = "double"
    BOOL = "bool"
    MODEL_TYPE = "model type"


def _spec_field(kind: _Kind, default: Any = None, *, repeated: bool = False,
                printed: bool = True) -> Any:
    metadata = {"kind": kind, "printed": printed}
    if repeated:
        return field(default_factory=list, metadata=metadata)
    return field(default=default, metadata=metadata)


@dataclass
class TrainerSpec:
    """Settings that control model training."""

    input: list[str] = _spec_field(_Kind.REPEATED_STRING, repeated=True)
    input_format: str = _spec_field(_Kind.STRING, "")
    model_prefix: str = _spec_field(_Kind.STRING, "")
    model_type: ModelType = _spec_field(_Kind.MODEL_TYPE, ModelType.UNIGRAM)
    vocab_size: int = _spec_field(_Kind.INT32, 8000)
    accept_language: list[str] = _spec_field(_Kind.REPEATED_STRING, repeated=True)
    self_test_sample_size: int = _spec_field(_Kind.INT32, 0)
    character_coverage: float = _spec_field(_Kind.DOUBLE, 0.9995)
    input_sentence_size: int = _spec_field(_Kind.UINT64, 0)
    shuffle_input_sentence: bool = _spec_field(_Kind.BOOL, True)
    seed_sentencepiece_size: int = _spec_field(_Kind.INT32, 1000000)
    shrinking_factor: float = _spec_field(_Kind.DOUBLE, 0.75)
    max_sentence_length: int = _spec_field(_Kind.INT32, 4192)
    num_threads: int = _spec_field(_Kind.INT32, 16)
    num_sub_iterations: int = _spec_field(_Kind.INT32, 2)
    max_sentencepiece_length: int = _spec_field(_Kind.INT32, 16)
    split_by_unicode_script: bool = _spec_field(_Kind.BOOL, True)
    split_by_number: bool = _spec_field(_Kind.BOOL, True)
    split_by_whitespace: bool = _spec_field(_Kind.BOOL, True)
    split_digits: bool = _spec_field(_Kind.BOOL, False)
    treat_whitespace_as_suffix: bool = _spec_field(_Kind.BOOL, False)
    allow_whitespace_only_pieces: bool = _spec_field(_Kind.BOOL, False)
    control_symbols: list[str] = _spec_field(_Kind.REPEATED_STRING, repeated=True)
    user_defined_symbols: list[str] = _spec_field(_Kind.REPEATED_STRING, repeated=True)
    required_chars: str = _spec_field(_Kind.STRING, "")
    byte_fallback: bool = _spec_field(_Kind.BOOL, False)
    vocabulary_output_piece_score: bool = _spec_field(_Kind.BOOL, True)
    train_extremely_large_corpus: bool = _spec_field(_Kind.BOOL, False)
    hard_vocab_limit: bool = _spec_field(_Kind.BOOL, True)
    use_all_vocab: bool = _spec_field(_Kind.BOOL, False)
    unk_id: int = _spec_field(_Kind.INT32, 0)
    bos_id: int = _spec_field(_Kind.INT32, 1)
    eos_id: int = _spec_field(_Kind.INT32, 2)
    pad_id: int = _spec_field(_Kind.INT32, -1)
    unk_piece: str = _spec_field(_Kind.STRING, "<unk>")
    bos_piece: str = _spec_field(_Kind.STRING, "<s>")
    eos_piece: str = _spec_field(_Kind.STRING, "</s>")
    pad_piece: str = _spec_field(_Kind.STRING, "<pad>")
    unk_surface: str = _spec_field(_Kind.STRING, " \u2047 ")


@dataclass
class NormalizerSpec:
    """Settings that control text normalization."""

    name: str = _spec_field(_Kind.STRING, "")
    precompiled_charsmap: bytes = _spec_field(_Kind.BYTES, b"", printed=False)
    add_dummy_prefix: bool = _spec_field(_Kind.BOOL, True)
    remove_extra_whitespaces: bool = _spec_field(_Kind.BOOL, True)
    escape_whitespaces: bool = _spec_field(_Kind.BOOL, True)
    normalization_rule_tsv: str = _spec_field(_Kind.STRING, "")


def split_csv(text: str) -> list[str]:
    """Split comma separated values; double quotes protect commas and
    a doubled quote inside quotes stands for one quote."""
    fields: list[str] = []
    end = len(text)
    pos = 0
    while pos < end:
        if text[pos] == '"':
            pos += 1
            chars: list[str] = []
            while pos < end:
                if text[pos] == '"':
                    pos += 1
                    if pos >= end or text[pos] != '"':
                        break
                chars.append(text[pos])
                pos += 1
            value = "".join(chars)
            comma = text.find(",", pos)
            pos = end if comma < 0 else comma
        else:
            comma = text.find(",", pos)
            if comma < 0:
                comma = end
            value = text[pos:comma]
            pos = comma
        fields.append(value)
        pos += 1
    return fields


_INT_RE = re.compile(r"\s*([+-]?\d+)")
_FLOAT_RE = re.compile(r"\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")
_TRUE_WORDS = frozenset({"1", "t", "true", "y", "yes"})
_FALSE_WORDS = frozenset({"0", "f", "false", "n", "no"})
_INT32_MIN, _INT32_MAX = -(2**31), 2**31 - 1
_UINT64_LIMIT = 2**64


def _leading_int(value: str) -> int:
    match = _INT_RE.match(value)
    if match is None:
        raise SpecError(f'cannot parse "{value}" as int.')
    return int(match.group(1))


def _parse_int32(value: str) -> int:
    number = _leading_int(value)
    if not _INT32_MIN <= number <= _INT32_MAX:
        raise SpecError(f'cannot parse "{value}" as int.')
    return number


def _parse_uint64(value: str) -> int:
    number = _leading_int(value)
    if abs(number) >= _UINT64_LIMIT:
        raise SpecError(f'cannot parse "{value}" as int.')
    return number % _UINT64_LIMIT


def _parse_double(value: str) -> float:
    match = _FLOAT_RE.match(value)
    if match is None:
        raise SpecError(f'cannot parse "{value}" as double.')
    return float(match.group(1))


def _parse_bool(value: str) -> bool:
    word = (value or "true").lower()
    if word in _TRUE_WORDS:
        return True
    if word in _FALSE_WORDS:
        return False
    raise SpecError(f'cannot parse "{value}" as bool.')


def _parse_bytes(value: str | bytes) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else bytes(value)


def _parse_model_type(value: str) -> ModelType:
    try:
        return ModelType[value.upper()]
    except KeyError:
        raise SpecError(
            f'unknown enumeration value of "{value}" as ModelType'
        ) from None


_PARSERS: dict[_Kind, Callable[[Any], Any]] = {
    _Kind.STRING: str,
    _Kind.BYTES: _parse_bytes,
    _Kind.INT32: _parse_int32,
    _Kind.UINT64: _parse_uint64,
    _Kind.DOUBLE: _parse_double,
    _Kind.BOOL: _parse_bool,
    _Kind.MODEL_TYPE: _parse_model_type,
}


def _check_spec(message: Any) -> None:
    if not isinstance(message, (TrainerSpec, NormalizerSpec)):
        raise TypeError(
            f"expected TrainerSpec or NormalizerSpec, got {type(message).__name__}"
        )


def set_proto_field(name: str, value: str, message: TrainerSpec | NormalizerSpec) -> None:
    """Set the field `name` of `message` from its text form `value`.

    Repeated fields take comma separated values, which are appended.
    """
    _check_spec(message)
    spec_field = next(
        (f for f in dataclasses.fields(message) if f.name == name), None
    )
    if spec_field is None:
        raise FieldNotFoundError(name, type(message).__name__)
    kind = spec_field.metadata["kind"]
    if kind is _Kind.REPEATED_STRING:
        getattr(message, name).extend(split_csv(value))
    else:
        setattr(message, name, _PARSERS[kind](value))


def _format_value(kind: _Kind, value: Any) -> str:
    if kind is _Kind.BOOL:
        return str(int(bool(value)))
    if kind is _Kind.DOUBLE:
        return format(float(value), "g")
    if kind is _Kind.MODEL_TYPE:
        return value.name if isinstance(value, ModelType) else "unknown"
    if kind is _Kind.BYTES:
        return value.decode("utf-8", errors="replace")
    return str(value)


def print_proto(message: TrainerSpec | NormalizerSpec, name: str) -> str:
    """Render `message` as a readable block headed by `name`."""
    _check_spec(message)
    lines = [f"{name} {{"]
    for spec_field in dataclasses.fields(message):
        if not spec_field.metadata["printed"]:
            continue
        kind = spec_field.metadata["kind"]
        value = getattr(message, spec_field.name)
        if kind is _Kind.REPEATED_STRING:
            lines.extend(f"  {spec_field.name}: {item}" for item in value)
        else:
            lines.append(f"  {spec_field.name}: {_format_value(kind, value)}")
    lines.append("}")
    return "\n".join(lines) + "\n"