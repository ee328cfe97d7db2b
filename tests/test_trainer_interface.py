import json

import pytest

from piecetrain.specs import ModelType, NormalizerSpec, PieceType, SpecError, TrainerSpec
from piecetrain.trainer import set_pretokenizer_for_training
from piecetrain.trainer_interface import (
    ModelProto,
    TrainerInterface,
    byte_to_piece,
    verify_spec,
)

WS = "\u2581"


def base_spec(**kwargs):
    spec = TrainerSpec(model_prefix="model", input=["input"])
    for key, value in kwargs.items():
        setattr(spec, key, value)
    return spec


def make(spec):
    return TrainerInterface(spec, NormalizerSpec(), NormalizerSpec())


def is_valid(spec, text):
    return make(spec).is_valid_sentencepiece(text)


def iter_spec(**kwargs):
    spec = TrainerSpec()
    for key, value in kwargs.items():
        setattr(spec, key, value)
    return spec


def test_train_checks_spec():
    trainer = make(base_spec())
    trainer.train()
    trainer.trainer_spec.vocab_size = 0
    with pytest.raises(SpecError):
        trainer.train()


def test_code_points_with_null_are_invalid():
    trainer = make(base_spec())
    assert not trainer.is_valid_sentencepiece([0x01, 0x00, 0x01])
    assert not trainer.is_valid_sentencepiece([0x01, 0x00])
    assert not trainer.is_valid_sentencepiece([0x00, 0x01])
    assert not trainer.is_valid_sentencepiece([0x00])


def test_is_valid_default_spec():
    spec = base_spec()
    assert not is_valid(spec, "")
    assert not is_valid(spec, "12345678912345678")
    assert is_valid(spec, "a")
    assert is_valid(spec, WS)
    assert is_valid(spec, WS + "a")
    assert not is_valid(spec, "a" + WS)
    assert not is_valid(spec, WS + "a" + WS)
    assert not is_valid(spec, "a" + WS + "b")
    assert not is_valid(spec, "a" + WS + "b" + WS)
    assert is_valid(spec, "あいう")
    assert is_valid(spec, "グーグル")
    assert is_valid(spec, "食べる")
    assert not is_valid(spec, "漢字ABC")
    assert not is_valid(spec, "F1")
    assert not is_valid(spec, "1F")
    assert not is_valid(spec, "1A2")
    assert is_valid(spec, "$10")
    assert not is_valid(spec, "$ABC")
    assert not is_valid(spec, "ab\tbc")
    assert not is_valid(spec, "ab cd")
    assert not is_valid(spec, "\0\0")
    assert not is_valid(spec, "\0")


def test_is_valid_whitespace_settings():
    spec = base_spec(split_by_whitespace=False)
    assert is_valid(spec, WS)
    assert is_valid(spec, WS * 3 + "a")
    assert is_valid(spec, WS + "a")
    assert not is_valid(spec, "a" + WS)
    assert not is_valid(spec, WS + "a" + WS)
    assert is_valid(spec, "a" + WS + "b")
    assert is_valid(spec, WS + "a" + WS + "b")
    assert is_valid(spec, WS + "a" + WS + "b" + WS + "c")
    assert not is_valid(spec, "a" + WS + "b" + WS)
    assert not is_valid(spec, WS * 2)
    assert not is_valid(spec, WS * 3)

    spec.allow_whitespace_only_pieces = True
    assert is_valid(spec, WS)
    assert is_valid(spec, WS * 2)
    assert is_valid(spec, WS * 3)
    assert is_valid(spec, WS * 2 + "a")
    assert not is_valid(spec, "a" + WS * 2)


def test_is_valid_script_and_length_settings():
    spec = base_spec(split_by_whitespace=False, split_by_unicode_script=False)
    assert is_valid(spec, "あいう")
    assert is_valid(spec, "グーグル")
    assert is_valid(spec, "食べる")
    assert is_valid(spec, "漢字ABC")
    assert is_valid(spec, "F1")
    assert is_valid(spec, "$10")
    assert is_valid(spec, "$ABC")

    spec.max_sentencepiece_length = 4
    assert is_valid(spec, "1234")
    assert not is_valid(spec, "12345")

    spec.max_sentencepiece_length = 10
    spec.split_by_unicode_script = True
    spec.split_by_number = False
    assert is_valid(spec, "F1")
    assert is_valid(spec, "11")
    assert is_valid(spec, "1F")
    assert is_valid(spec, "ABC")
    assert is_valid(spec, "1A2")
    assert is_valid(spec, "1a234abc")
    assert not is_valid(spec, "9Aあ")
    assert is_valid(spec, "9あい0A")


def test_is_valid_whitespace_suffix():
    spec = base_spec(split_by_number=False, max_sentencepiece_length=10,
                     split_by_whitespace=True, treat_whitespace_as_suffix=True)
    assert is_valid(spec, WS)
    assert not is_valid(spec, WS + "a")
    assert is_valid(spec, "a" + WS)
    assert not is_valid(spec, WS + "a" + WS)
    assert not is_valid(spec, "a" + WS + "b")
    assert not is_valid(spec, WS + "a" + WS + "b")
    assert not is_valid(spec, "a" + WS + "b" + WS)

    spec.allow_whitespace_only_pieces = True
    assert is_valid(spec, WS)
    assert is_valid(spec, WS * 2)
    assert not is_valid(spec, WS + "a" + WS)
    assert not is_valid(spec, "a" + WS + "b")
    assert not is_valid(spec, WS + "a" + WS + "b")
    assert not is_valid(spec, "a" + WS + "b" + WS)

    spec.allow_whitespace_only_pieces = False
    spec.split_by_whitespace = False
    assert is_valid(spec, WS)
    assert not is_valid(spec, WS + "a")
    assert is_valid(spec, "a" + WS)
    assert not is_valid(spec, WS + "a" + WS)
    assert is_valid(spec, "a" + WS + "b")
    assert not is_valid(spec, WS + "a" + WS + "b")
    assert is_valid(spec, "a" + WS + "b" + WS)


def test_is_valid_split_digits():
    spec = base_spec(split_by_whitespace=False, treat_whitespace_as_suffix=True,
                     split_by_number=False, max_sentencepiece_length=10,
                     split_digits=False)
    for text in ("1", "59", "2007", "x1", "2x"):
        assert is_valid(spec, text)

    spec.split_digits = True
    assert is_valid(spec, "1")
    assert not is_valid(spec, "59")
    assert not is_valid(spec, "2007")
    assert not is_valid(spec, "x1")
    assert not is_valid(spec, "2x")
    assert is_valid(spec, "１")
    assert not is_valid(spec, "５９")
    assert not is_valid(spec, "２００７")
    assert not is_valid(spec, "＊１")
    assert not is_valid(spec, "２＊")


def test_default_special_ids():
    spec = base_spec()
    assert (spec.unk_id, spec.bos_id, spec.eos_id, spec.pad_id) == (0, 1, 2, -1)


def pieces_of(trainer):
    return {piece_id: piece for piece_id, (piece, _) in trainer.meta_pieces.items()}


@pytest.mark.parametrize(
    "ids, expected",
    [
        ((0, 1, 2, 3), {0: "<unk>", 1: "<s>", 2: "</s>", 3: "<pad>"}),
        ((0, 3, 2, 1), {0: "<unk>", 1: "<pad>", 2: "</s>", 3: "<s>"}),
        ((0, -1, 1, -1), {0: "<unk>", 1: "</s>"}),
        ((0, -1, -1, -1), {0: "<unk>"}),
    ],
)
def test_override_special_ids(ids, expected):
    unk, bos, eos, pad = ids
    trainer = make(base_spec(unk_id=unk, bos_id=bos, eos_id=eos, pad_id=pad))
    assert pieces_of(trainer) == expected


def test_control_and_user_defined_symbols():
    spec = base_spec(pad_id=-1, control_symbols=["<c1>", "<c2>"],
                     user_defined_symbols=["<u1>", "<u2>"])
    trainer = make(spec)
    assert pieces_of(trainer) == {
        0: "<unk>", 1: "<s>", 2: "</s>", 3: "<c1>", 4: "<c2>", 5: "<u1>", 6: "<u2>",
    }


def test_large_vocab_special_ids():
    trainer = make(base_spec(vocab_size=32000, unk_id=31999, bos_id=31900, eos_id=31800))
    assert trainer.meta_pieces[31999] == ("<unk>", PieceType.UNKNOWN)
    assert trainer.meta_pieces[31900] == ("<s>", PieceType.CONTROL)


@pytest.mark.parametrize(
    "settings",
    [
        {"unk_id": -1, "bos_id": 0, "eos_id": 1},
        {"unk_id": 640000, "bos_id": 0, "eos_id": 1},
        {"control_symbols": ["<unk>"]},
        {"control_symbols": ["<foo>", "<foo>"]},
        {"unk_piece": "__UNK__", "bos_piece": "__UNK__"},
        {"unk_piece": ""},
    ],
)
def test_invalid_special_pieces(settings):
    with pytest.raises(SpecError):
        make(base_spec(**settings))


def test_unk_undefined_but_eos_disabled_is_fine():
    trainer = make(base_spec(bos_id=-1, eos_id=2))
    assert pieces_of(trainer) == {0: "<unk>", 2: "</s>"}


def test_special_pieces_as_user_defined():
    spec = base_spec(unk_id=0, bos_id=10, eos_id=20, pad_id=30,
                     user_defined_symbols=["<s>", "<pad>", "foo"])
    trainer = make(spec)
    assert trainer.meta_pieces == {
        0: ("<unk>", PieceType.UNKNOWN),
        10: ("<s>", PieceType.USER_DEFINED),
        20: ("</s>", PieceType.CONTROL),
        30: ("<pad>", PieceType.USER_DEFINED),
        1: ("foo", PieceType.USER_DEFINED),
    }


def test_custom_special_piece_names():
    spec = base_spec(unk_piece="__UNK__", bos_piece="__BOS__", eos_piece="__EOS__",
                     pad_piece="__PAD__", pad_id=3)
    trainer = make(spec)
    assert pieces_of(trainer) == {0: "__UNK__", 1: "__BOS__", 2: "__EOS__", 3: "__PAD__"}


def test_byte_pieces():
    spec = base_spec(control_symbols=["<c1>", "<c2>"],
                     user_defined_symbols=["<u1>", "<u2>"], byte_fallback=True)
    trainer = make(spec)
    for byte in range(256):
        assert trainer.meta_pieces[byte + 7] == (f"<0x{byte:02X}>", PieceType.BYTE)


def test_byte_to_piece():
    assert byte_to_piece(0) == "<0x00>"
    assert byte_to_piece(255) == "<0xFF>"
    with pytest.raises(ValueError):
        byte_to_piece(256)


@pytest.mark.parametrize(
    "settings",
    [
        {"vocab_size": 0},
        {"character_coverage": 0.5},
        {"max_sentencepiece_length": 0},
        {"num_sub_iterations": 11},
        {"num_threads": 0},
        {"self_test_sample_size": 1001},
        {"shrinking_factor": 0.99},
        {"max_sentence_length": 5},
        {"input_sentence_size": 50},
        {"bos_piece": ""},
        {"model_type": ModelType.BPE, "use_all_vocab": True},
    ],
)
def test_verify_spec_rejects(settings):
    with pytest.raises(SpecError):
        verify_spec(base_spec(**settings))


def test_verify_spec_pretokenizer_needs_unigram():
    set_pretokenizer_for_training(object())
    try:
        with pytest.raises(SpecError, match="UNIGRAM"):
            verify_spec(base_spec(model_type=ModelType.BPE))
    finally:
        set_pretokenizer_for_training(None)


FINAL_PIECES = [("a", 0.1), ("b", 0.2), ("c", 0.3)]


def test_serialize_hard_limit_fails():
    trainer = make(base_spec(vocab_size=10))
    trainer.final_pieces = list(FINAL_PIECES)
    with pytest.raises(SpecError):
        trainer.serialize()


@pytest.mark.parametrize(
    "settings",
    [
        {"vocab_size": 10, "hard_vocab_limit": False},
        {"vocab_size": 10, "model_type": ModelType.CHAR, "hard_vocab_limit": True},
    ],
)
def test_serialize_soft_limit(settings):
    trainer = make(base_spec(**settings))
    trainer.final_pieces = list(FINAL_PIECES)
    model = trainer.serialize()
    assert model.trainer_spec.vocab_size == 6
    assert [(p.piece, p.score) for p in model.pieces[3:]] == FINAL_PIECES
    assert model.pieces[0].type == PieceType.UNKNOWN
    assert model.denormalizer_spec is None


def test_serialize_duplicate_piece():
    trainer = make(base_spec(vocab_size=10, hard_vocab_limit=False))
    trainer.final_pieces = [("a", 0.1), ("a", 0.2)]
    with pytest.raises(SpecError, match="already defined"):
        trainer.serialize()


def test_serialize_keeps_denormalizer_with_rules():
    denorm = NormalizerSpec(normalization_rule_tsv="rules.tsv")
    trainer = TrainerInterface(base_spec(vocab_size=10, hard_vocab_limit=False),
                               NormalizerSpec(), denorm)
    trainer.final_pieces = list(FINAL_PIECES)
    model = trainer.serialize()
    assert model.denormalizer_spec.normalization_rule_tsv == "rules.tsv"


def test_save_vocab_with_scores(tmp_path):
    trainer = make(base_spec(vocab_size=10, hard_vocab_limit=False))
    trainer.final_pieces = list(FINAL_PIECES)
    path = tmp_path / "m.vocab"
    trainer.save_vocab(str(path))
    assert path.read_text(encoding="utf-8").splitlines() == [
        "<unk>\t0", "<s>\t0", "</s>\t0", "a\t0.1", "b\t0.2", "c\t0.3",
    ]


def test_save_vocab_without_scores(tmp_path):
    trainer = make(base_spec(vocab_size=10, hard_vocab_limit=False,
                             vocabulary_output_piece_score=False))
    trainer.final_pieces = list(FINAL_PIECES)
    path = tmp_path / "m.vocab"
    trainer.save_vocab(str(path))
    assert path.read_text(encoding="utf-8").splitlines() == [
        "<unk>", "<s>", "</s>", "a", "b", "c",
    ]


def test_save_writes_model_and_vocab(tmp_path):
    prefix = str(tmp_path / "m")
    trainer = make(base_spec(model_prefix=prefix, vocab_size=10, hard_vocab_limit=False))
    trainer.final_pieces = list(FINAL_PIECES)
    model = trainer.save()
    assert isinstance(model, ModelProto) and len(model.pieces) == 6
    data = json.loads((tmp_path / "m.model").read_text(encoding="utf-8"))
    assert [p["piece"] for p in data["pieces"]] == ["<unk>", "<s>", "</s>", "a", "b", "c"]
    assert data["trainer_spec"]["vocab_size"] == 6
    assert data["pieces"][0]["type"] == "UNKNOWN"
    assert len((tmp_path / "m.vocab").read_text(encoding="utf-8").splitlines()) == 6


def write_character_input(path):
    path.write_text("a" * 50 + "あ" * 49 + "b" + "\n\n", encoding="utf-8")


@pytest.mark.parametrize(
    "required, expected",
    [
        ("", {"a": 50, "あ": 49}),
        ("漢字", {"a": 50, "あ": 49, "漢": 0, "字": 0}),
        ("aあ", {"a": 50, "あ": 49}),
        ("b", {"a": 50, "あ": 49, "b": 1}),
    ],
)
def test_character_coverage(tmp_path, required, expected):
    input_file = tmp_path / "input"
    write_character_input(input_file)
    spec = TrainerSpec(input=[str(input_file)], model_prefix="model",
                       character_coverage=0.98, required_chars=required)
    trainer = make(spec)
    trainer.load_sentences()
    assert trainer.required_chars == expected


def test_load_sentences_missing_file(tmp_path):
    spec = TrainerSpec(input=[str(tmp_path / "input_not_exist")], model_prefix="model")
    with pytest.raises(OSError):
        make(spec).load_sentences()


def test_load_sentences_input_and_iterator_exclusive():
    trainer = make(base_spec())
    with pytest.raises(SpecError, match="exclusive"):
        trainer.load_sentences(["hello"])


def test_load_sentences_normalizes_whitespace():
    trainer = make(iter_spec())
    trainer.load_sentences(["  hello   world  "])
    assert trainer.sentences == [(WS + "hello" + WS + "world", 1)]


def test_load_sentences_tsv():
    trainer = make(iter_spec(input_format="tsv"))
    trainer.load_sentences(["hello\t3", "world\t1"])
    assert trainer.sentences == [(WS + "hello", 3), (WS + "world", 1)]
    assert trainer.required_chars["l"] == 7
    assert trainer.required_chars[WS] == 4


@pytest.mark.parametrize("line", ["hello", "hello\t0", "hello\tmany"])
def test_load_sentences_bad_tsv(line):
    with pytest.raises(SpecError):
        make(iter_spec(input_format="tsv")).load_sentences([line])


def test_load_sentences_bad_format():
    with pytest.raises(SpecError, match="Supported formats"):
        make(iter_spec(input_format="csv")).load_sentences(["abc"])


def test_load_sentences_meta_pieces_become_unknown():
    trainer = make(iter_spec())
    trainer.load_sentences(["a<s>b"])
    assert trainer.sentences == [(WS + "a\u2585b", 1)]
    assert "\t" not in trainer.required_chars


def test_load_sentences_skips_long_and_reserved_lines():
    trainer = make(iter_spec(max_sentence_length=10))
    trainer.load_sentences(["a" * 11, "x\u2585y", "abc"])
    assert trainer.sentences == [(WS + "abc", 1)]


def test_load_sentences_input_sentence_size_limit():
    trainer = make(iter_spec(input_sentence_size=101, shuffle_input_sentence=False))
    trainer.load_sentences([f"w{n}" for n in range(200)])
    assert len(trainer.sentences) == 101
    assert trainer.sentences[0] == (WS + "w0", 1)


def test_load_sentences_vocab_too_small():
    with pytest.raises(SpecError, match="Vocabulary size"):
        make(iter_spec(vocab_size=5)).load_sentences(["abc"])


def test_load_sentences_rejects_charsmap():
    trainer = TrainerInterface(iter_spec(), NormalizerSpec(precompiled_charsmap=b"x"),
                               NormalizerSpec())
    with pytest.raises(SpecError, match="not supported"):
        trainer.load_sentences(["abc"])


def test_load_sentences_self_test_samples():
    trainer = make(iter_spec(self_test_sample_size=2))
    trainer.load_sentences(["abc", "abd", "abe"])
    assert len(trainer.self_test_samples) == 2
    assert set(trainer.self_test_samples) <= {"abc", "abd", "abe"}