"""Base trainer: spec checks, meta pieces, sentence loading and model output."""

from __future__ import annotations

import base64
import copy
import dataclasses
import enum
import json
import logging
import re
import struct
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from piecetrain.sentences import (
    MultiFileSentenceIterator,
    ReservoirSampler,
    Sentence,
    SentenceSelector,
    sorted_by_frequency,
)
from piecetrain.specs import (
    ModelType,
    NormalizerSpec,
    PieceType,
    SpecError,
    TrainerSpec,
)
from piecetrain.trainer import get_pretokenizer_for_training
from piecetrain.unicode_script import ScriptType, get_script

logger = logging.getLogger("piecetrain")

WS_CHAR = "\u2581"
UNK_CHAR = "\u2585"
UPP_BOUNDARY_CHAR = "\t"

_KATAKANA_LONG_VOWEL = 0x30FC
_EXTRA_SPACES = re.compile(" +")


def _check(condition: bool, message: str) -> None:
    if not condition:
        raise SpecError(message)


def _is_valid_codepoint(code: int) -> bool:
    return 0 <= code < 0xD800 or 0xE000 <= code <= 0x10FFFF


def _is_unicode_decimal_number(code: int) -> bool:
    return 0x30 <= code <= 0x39 or 0xFF10 <= code <= 0xFF19


def _is_structurally_valid(text: str) -> bool:
    try:
        text.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def _to_float32(value: float) -> float:
    return struct.unpack("f", struct.pack("f", value))[0]


def byte_to_piece(byte: int) -> str:
    """Return the vocabulary piece that stands for one raw byte."""
    if not 0 <= byte <= 255:
        raise ValueError(f"byte out of range: {byte}")
    return f"<0x{byte:02X}>"


def verify_spec(trainer_spec: TrainerSpec) -> None:
    """Raise SpecError if ``trainer_spec`` holds values training cannot use."""
    _check(trainer_spec.vocab_size > 0, "vocab_size must be greater than 0.")

    if trainer_spec.model_type in (ModelType.UNIGRAM, ModelType.BPE):
        _check(
            not trainer_spec.use_all_vocab,
            "--use_all_vocab=true is valid for WORD/CHAR model.",
        )

    ranges = (
        ("character_coverage", 0.98, 1.0),
        ("max_sentencepiece_length", 1, 512),
        ("num_sub_iterations", 1, 10),
        ("num_threads", 1, 128),
        ("self_test_sample_size", 0, 1000),
        ("shrinking_factor", 0.5, 0.95),
        ("max_sentence_length", 10, 1073741824),
    )
    for name, low, high in ranges:
        value = getattr(trainer_spec, name)
        _check(low <= value <= high, f"{name} must be in [{low}, {high}], got {value}.")

    size = trainer_spec.input_sentence_size
    _check(size <= 0 or size > 100, "input_sentence_size must be 0 or greater than 100.")

    for name in ("unk_piece", "bos_piece", "eos_piece", "pad_piece"):
        _check(bool(getattr(trainer_spec, name)), f"{name} must not be empty.")

    if get_pretokenizer_for_training() is not None:
        _check(
            trainer_spec.model_type == ModelType.UNIGRAM,
            "PretokenizerForTraining is only supported in UNIGRAM mode.",
        )


@dataclass
class ModelPiece:
    """One vocabulary entry of a trained model."""

    piece: str
    score: float = 0.0
    type: PieceType = PieceType.NORMAL


def _spec_to_dict(spec: TrainerSpec | NormalizerSpec) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for spec_field in dataclasses.fields(spec):
        value = getattr(spec, spec_field.name)
        if isinstance(value, bytes):
            value = base64.b64encode(value).decode("ascii")
        elif isinstance(value, enum.Enum):
            value = value.name
        elif isinstance(value, list):
            value = list(value)
        result[spec_field.name] = value
    return result


@dataclass
class ModelProto:
    """A trained model: its pieces and the specs it was trained with."""

    pieces: list[ModelPiece] = field(default_factory=list)
    trainer_spec: TrainerSpec = field(default_factory=TrainerSpec)
    normalizer_spec: NormalizerSpec = field(default_factory=NormalizerSpec)
    denormalizer_spec: NormalizerSpec | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return the model as plain JSON-compatible data."""
        data: dict[str, Any] = {
            "pieces": [
                {"piece": p.piece, "score": p.score, "type": p.type.name}
                for p in self.pieces
            ],
            "trainer_spec": _spec_to_dict(self.trainer_spec),
            "normalizer_spec": _spec_to_dict(self.normalizer_spec),
        }
        if self.denormalizer_spec is not None:
            data["denormalizer_spec"] = _spec_to_dict(self.denormalizer_spec)
        return data

    def to_json(self) -> str:
        """Return the model as a JSON document."""
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=1)


class TrainerInterface:
    """Common part of all trainers.

    Construction checks the trainer spec and assigns the meta pieces
    (unknown, control, user-defined and byte pieces) to their ids; an
    invalid spec raises SpecError. Trainers fill ``final_pieces`` with
    (piece, score) pairs, which ``serialize`` and ``save`` turn into a model.
    """

    def __init__(self, trainer_spec: TrainerSpec, normalizer_spec: NormalizerSpec,
                 denormalizer_spec: NormalizerSpec) -> None:
        self.trainer_spec = copy.deepcopy(trainer_spec)
        self.normalizer_spec = copy.deepcopy(normalizer_spec)
        self.denormalizer_spec = copy.deepcopy(denormalizer_spec)
        self.meta_pieces: dict[int, tuple[str, PieceType]] = {}
        self.required_chars: dict[str, int] = {}
        self.final_pieces: list[tuple[str, float]] = []
        self.sentences: list[Sentence] = []
        self.self_test_samples: list[str] = []
        verify_spec(self.trainer_spec)
        self._init_meta_pieces()

    def train(self) -> None:
        """Check that the trainer spec is still usable.

        The base trainer learns no pieces; subclasses extend this to fill
        ``final_pieces``.
        """
        verify_spec(self.trainer_spec)

    # Meta pieces -----------------------------------------------------

    def _init_meta_pieces(self) -> None:
        spec = self.trainer_spec
        _check(not self.meta_pieces, "meta pieces are already initialized.")
        has_unk = False

        def insert_id(piece_id: int, piece: str) -> bool:
            nonlocal has_unk
            if piece_id < 0:
                return True
            if (piece_id >= spec.vocab_size or piece_id in self.meta_pieces
                    or (has_unk and piece == spec.unk_piece)):
                return False
            if piece == spec.unk_piece:
                has_unk = True
            kind = PieceType.UNKNOWN if piece == spec.unk_piece else PieceType.CONTROL
            self.meta_pieces[piece_id] = (piece, kind)
            return True

        for name in ("unk", "bos", "eos", "pad"):
            piece_id = getattr(spec, f"{name}_id")
            piece = getattr(spec, f"{name}_piece")
            _check(insert_id(piece_id, piece),
                   f"cannot assign {piece} to id {piece_id}.")
        _check(has_unk, f"{spec.unk_piece} must be defined.")

        seen: set[str] = set()
        next_id = 0

        def insert_meta_symbol(piece: str, kind: PieceType) -> None:
            nonlocal next_id
            _check(piece not in seen, f"{piece} is already defined.")
            seen.add(piece)
            _check(
                piece != spec.unk_piece,
                f"{spec.unk_piece} must not be defined with --control_symbols "
                "and --user_defined_symbols.",
            )
            if piece == spec.bos_piece and spec.bos_id >= 0:
                self.meta_pieces[spec.bos_id] = (piece, kind)
            elif piece == spec.eos_piece and spec.eos_id >= 0:
                self.meta_pieces[spec.eos_id] = (piece, kind)
            elif piece == spec.pad_piece and spec.pad_id >= 0:
                self.meta_pieces[spec.pad_id] = (piece, kind)
            else:
                while next_id in self.meta_pieces:
                    next_id += 1
                self.meta_pieces[next_id] = (piece, kind)

        for piece in spec.control_symbols:
            insert_meta_symbol(piece, PieceType.CONTROL)
        for piece in spec.user_defined_symbols:
            insert_meta_symbol(piece, PieceType.USER_DEFINED)
        if spec.byte_fallback:
            for byte in range(256):
                insert_meta_symbol(byte_to_piece(byte), PieceType.BYTE)

    # Piece validity --------------------------------------------------

    def is_valid_sentencepiece(self, piece: str | Iterable[int]) -> bool:
        """Tell whether ``piece`` (text or code points) may become a piece.

        The answer depends on the length limit, whitespace placement and
        the script and digit splitting settings of the trainer spec.
        """
        spec = self.trainer_spec
        codes = [ord(c) for c in piece] if isinstance(piece, str) else [int(c) for c in piece]
        size = len(codes)
        if size == 0 or size > spec.max_sentencepiece_length:
            return False

        ws = ord(WS_CHAR)
        last = size - 1
        all_whitespace = all(code == ws for code in codes)
        prev_script: ScriptType | None = None

        for pos, code in enumerate(codes):
            if code in (ord(UNK_CHAR), 0x0000, ord(UPP_BOUNDARY_CHAR)):
                return False
            if code == 0x0020:
                logger.warning("space must not be included in normalized string.")
                return False
            if not _is_valid_codepoint(code):
                return False

            if code == ws:
                if not spec.allow_whitespace_only_pieces or not all_whitespace:
                    if spec.treat_whitespace_as_suffix:
                        if ((spec.split_by_whitespace and pos < last)
                                or (not spec.split_by_whitespace and pos < last and pos == 0)):
                            return False
                    elif ((spec.split_by_whitespace and pos > 0)
                            or (not spec.split_by_whitespace and pos > 0 and pos == last)):
                        return False
                continue

            script: ScriptType | None = get_script(code)
            if (script in (ScriptType.HIRAGANA, ScriptType.KATAKANA)
                    or code == _KATAKANA_LONG_VOWEL):
                script = ScriptType.HAN
            is_digit = _is_unicode_decimal_number(code)
            if not spec.split_by_number and is_digit:
                script = None
            if spec.split_digits and is_digit and size > 1:
                return False
            if (spec.split_by_unicode_script and script is not None
                    and prev_script is not None and prev_script != script):
                return False
            prev_script = script
        return True

    # Sentence loading ------------------------------------------------

    def _normalize(self, text: str) -> str:
        nspec = self.normalizer_spec
        if nspec.remove_extra_whitespaces:
            text = _EXTRA_SPACES.sub(" ", text.strip(" "))
        if not text:
            return ""
        if nspec.add_dummy_prefix:
            text = text + " " if self.trainer_spec.treat_whitespace_as_suffix else " " + text
        if nspec.escape_whitespaces:
            text = text.replace(" ", WS_CHAR)
        return text

    def _meta_piece_pattern(self) -> re.Pattern[str] | None:
        pieces = {piece for piece, _ in self.meta_pieces.values() if piece}
        for piece in sorted(pieces):
            logger.info("Adding meta_piece: %s", piece)
        if not pieces:
            return None
        ordered = sorted(pieces, key=len, reverse=True)
        return re.compile("|".join(re.escape(p) for p in ordered))

    def load_sentences(self, sentence_iterator: Iterable[str] | None = None) -> None:
        """Load, normalize and filter the training sentences.

        Sentences come from ``sentence_iterator`` or, when it is None, from
        the files in ``trainer_spec.input``. Afterwards ``sentences`` holds
        (normalized sentence, frequency) pairs with rare characters replaced
        by the unknown character, and ``required_chars`` maps every kept
        character to its frequency.
        """
        spec = self.trainer_spec
        _check(not self.sentences, "sentences are already loaded.")
        _check(not self.required_chars, "required characters are already computed.")
        _check(spec.input_format in ("", "text", "tsv"),
               "Supported formats are 'text' and 'tsv'.")
        _check((sentence_iterator is not None) != bool(spec.input),
               "SentenceIterator and trainer_spec.input() must be exclusive.")
        _check(not self.normalizer_spec.precompiled_charsmap,
               "precompiled character maps are not supported.")

        is_tsv = spec.input_format == "tsv"
        selector = SentenceSelector(self.sentences, spec)
        test_sampler: ReservoirSampler[str] = ReservoirSampler(
            spec.self_test_sample_size, sampled=self.self_test_samples
        )
        if sentence_iterator is None:
            logger.info("SentenceIterator is not specified. Using MultiFileSentenceIterator.")
            sentence_iterator = MultiFileSentenceIterator(spec.input)

        too_long_lines = 0
        for sentence in sentence_iterator:
            freq = 1
            if is_tsv:
                parts = sentence.split("\t")
                _check(len(parts) == 2,
                       f"Input format must be: word <tab> freq. {sentence}")
                sentence = parts[0]
                try:
                    freq = int(parts[1].strip())
                except ValueError:
                    raise SpecError("Could not parse the frequency") from None
                _check(freq >= 1, f"frequency must be at least 1, got {freq}.")

            if not sentence:
                continue
            if len(sentence.encode("utf-8", errors="surrogatepass")) > spec.max_sentence_length:
                if too_long_lines == 0:
                    logger.warning("Found too long line (%d > %d).",
                                   len(sentence.encode("utf-8", errors="surrogatepass")),
                                   spec.max_sentence_length)
                    logger.warning("Too long lines are skipped in the training.")
                    logger.warning("The maximum length can be changed with "
                                   "--max_sentence_length=<size> flag.")
                too_long_lines += 1
                continue
            if UNK_CHAR in sentence:
                logger.info("Reserved chars are found. Skipped: %s", sentence)
                continue

            test_sampler.add(sentence)
            if not selector.add((sentence, freq)):
                break

        selector.finish()
        if len(self.sentences) == selector.total_size:
            logger.info("Loaded all %d sentences", len(self.sentences))
        else:
            logger.info("Sampled %d sentences from %d sentences.",
                        len(self.sentences), selector.total_size)
        if too_long_lines > 0:
            logger.info("Skipped %d too long sentences.", too_long_lines)
        if self.self_test_samples:
            logger.info("Loaded %d test sentences", len(self.self_test_samples))

        self._normalize_sentences()
        self._select_required_chars()

        if spec.model_type not in (ModelType.WORD, ModelType.CHAR):
            needed = len(self.required_chars) + len(self.meta_pieces)
            _check(
                needed <= spec.vocab_size,
                f"Vocabulary size is smaller than required_chars. {spec.vocab_size} "
                f"vs {needed}. Increase vocab_size or decrease character_coverage "
                "with --character_coverage option.",
            )
        logger.info("Done! preprocessed %d sentences.", len(self.sentences))

    def _normalize_sentences(self) -> None:
        pattern = self._meta_piece_pattern()
        logger.info("Normalizing sentences...")
        _check(bool(self.sentences), "no sentences were loaded.")
        normalized: list[Sentence] = []
        for text, freq in self.sentences:
            text = self._normalize(text)
            if pattern is not None:
                text = pattern.sub(UPP_BOUNDARY_CHAR, text)
            _check(" " not in text, "Normalized string must not include spaces")
            if text:
                normalized.append((text, freq))
        self.sentences[:] = normalized

    def _select_required_chars(self) -> None:
        spec = self.trainer_spec
        chars_count: dict[str, list[Any]] = {}
        for char in spec.required_chars:
            _check(_is_valid_codepoint(ord(char)),
                   f"invalid code point in required_chars: {ord(char):#x}")
            if char == "\0":
                logger.info("Found null character. The required_chars field "
                            "must be encoded in utf-8.")
                continue
            chars_count.setdefault(char, [False, 0])[0] = True

        all_chars_count = 0
        for text, freq in self.sentences:
            for char in text:
                if not _is_valid_codepoint(ord(char)):
                    continue
                if char == "\0":
                    logger.info("Found null character. The corpus must be encoded in utf-8.")
                    continue
                _check(char != " ", "space must not be included in normalized string.")
                chars_count.setdefault(char, [False, 0])[1] += freq
                all_chars_count += freq
        logger.info("all chars count=%d", all_chars_count)

        def coverage_of(count: int) -> float:
            return count / all_chars_count if all_chars_count else 0.0

        accumulated = 0
        ranked = sorted_by_frequency({c: tuple(v) for c, v in chars_count.items()})
        for char, (_, count) in ranked:
            coverage = _to_float32(coverage_of(accumulated))
            if not spec.use_all_vocab and coverage >= spec.character_coverage:
                logger.info("Done: %g%% characters are covered.", 100.0 * coverage)
                break
            accumulated += count
            _check(char != " ", "space must not be included in normalized string.")
            if char == UPP_BOUNDARY_CHAR:
                continue
            self.required_chars[char] = count

        logger.info("Alphabet size=%d", len(self.required_chars))
        logger.info("Final character coverage=%g", coverage_of(accumulated))
        _check(UNK_CHAR not in self.required_chars,
               "the unknown character must not be a required character.")

        self.sentences[:] = [
            ("".join(c if c in self.required_chars else UNK_CHAR for c in text), freq)
            for text, freq in self.sentences
        ]

    # Output ----------------------------------------------------------

    def serialize(self) -> ModelProto:
        """Build the model from the meta pieces and ``final_pieces``."""
        spec = self.trainer_spec
        model = ModelProto()
        seen: set[str] = set()

        def check_piece(piece: str) -> None:
            _check(_is_structurally_valid(piece), f"{piece!r} is not valid UTF-8.")
            _check(bool(piece), "piece must not be empty.")
            _check(piece not in seen, f"{piece} is already defined")
            seen.add(piece)

        final_index = 0
        for piece_id in range(spec.vocab_size):
            meta = self.meta_pieces.get(piece_id)
            if meta is not None:
                piece, kind = meta
                model.pieces.append(ModelPiece(piece, 0.0, kind))
                _check(len(model.pieces) - 1 == piece_id,
                       f"meta piece {piece} cannot take id {piece_id}.")
                _check(kind != PieceType.NORMAL, f"meta piece {piece} must not be NORMAL.")
                check_piece(piece)
            elif final_index < len(self.final_pieces):
                piece, score = self.final_pieces[final_index]
                final_index += 1
                model.pieces.append(ModelPiece(piece, score))
                check_piece(piece)

        _check(final_index == len(self.final_pieces),
               "not all final pieces fit into the vocabulary.")

        model.trainer_spec = copy.deepcopy(spec)
        model.normalizer_spec = copy.deepcopy(self.normalizer_spec)
        if self.denormalizer_spec.normalization_rule_tsv:
            model.denormalizer_spec = copy.deepcopy(self.denormalizer_spec)

        size = len(model.pieces)
        if not spec.hard_vocab_limit or spec.model_type == ModelType.CHAR:
            _check(spec.vocab_size >= size, "too many pieces for vocab_size.")
            _check(spec.vocab_size >= len(seen), "too many pieces for vocab_size.")
            model.trainer_spec.vocab_size = size
        else:
            _check(spec.vocab_size == size,
                   f"Vocabulary size too high ({spec.vocab_size}). "
                   f"Please set it to a value <= {size}.")
            _check(spec.vocab_size == len(seen),
                   f"Vocabulary size too high ({spec.vocab_size}). "
                   f"Please set it to a value <= {len(seen)}.")
        return model

    def save_vocab(self, filename: str) -> None:
        """Write one piece per line, with its score when the spec asks for it."""
        logger.info("Saving vocabs: %s", filename)
        model = self.serialize()
        with open(filename, "w", encoding="utf-8", newline="\n") as out:
            for piece in model.pieces:
                if self.trainer_spec.vocabulary_output_piece_score:
                    out.write(f"{piece.piece}\t{format(piece.score, 'g')}\n")
                else:
                    out.write(f"{piece.piece}\n")

    def _save_model(self, filename: str) -> None:
        logger.info("Saving model: %s", filename)
        model = self.serialize()
        with open(filename, "w", encoding="utf-8") as out:
            out.write(model.to_json())

    def save(self) -> ModelProto:
        """Return the model; with a model prefix, also write
        ``<prefix>.model`` (JSON) and ``<prefix>.vocab``."""
        model = self.serialize()
        prefix = self.trainer_spec.model_prefix
        if prefix:
            self._save_model(prefix + ".model")
            self.save_vocab(prefix + ".vocab")
        return model