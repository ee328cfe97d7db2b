# piecetrain

Building blocks for training subword vocabularies (unigram, BPE, word and
character models). The package covers the configuration and
data-preparation side of training: specs, sentence loading and sampling,
character selection, validation of candidate pieces, and writing out the
final vocabulary.

It has no dependencies outside the standard library.

## Modules

- `piecetrain.specs`
  - `TrainerSpec` and `NormalizerSpec`: dataclasses holding every training
    and normalization setting with its default (for example
    `vocab_size=8000`, `character_coverage=0.9995`, `unk_id=0`,
    `bos_id=1`, `eos_id=2`, `pad_id=-1`).
  - `ModelType` (`UNIGRAM`, `BPE`, `WORD`, `CHAR`) and `PieceType`
    (`NORMAL`, `UNKNOWN`, `CONTROL`, `USER_DEFINED`, `UNUSED`, `BYTE`).
  - `set_proto_field(name, value, message)`: sets one field from its text
    form. Repeated fields take comma separated values, which are appended;
    an empty value for a boolean field means true; model types are
    matched case-insensitively.
  - `split_csv(text)`: splits comma separated values, where double quotes
    protect commas.
  - `print_proto(message, name)`: renders a spec as a readable block.
  - `SpecError` for unparsable or invalid values, and its subclass
    `FieldNotFoundError` for unknown field names.
- `piecetrain.unicode_script`
  - `ScriptType` and `get_script(c)`, which returns the script of a
    character or code point, derived from its name in the Unicode
    database; characters it cannot place are `ScriptType.COMMON`.
- `piecetrain.trainer`
  - `parse_args(args)`: turns a string such as
    `"--input=corpus.txt --vocab_size=1000"` into a dict; a flag without
    `=` gets an empty value and the first occurrence of a key wins.
  - `merge_specs_from_args(args, trainer_spec, normalizer_spec,
    denormalizer_spec)`: applies such a string, or a mapping, to the three
    specs in place and returns them. `normalization_rule_name` sets the
    normalizer's name, `denormalization_rule_tsv` configures the
    denormalizer, and `minloglevel` sets the level of the `piecetrain`
    logger.
  - `populate_model_type_from_string(type_name, trainer_spec)`.
  - `set_pretokenizer_for_training(pretokenizer)` and
    `get_pretokenizer_for_training()`.
- `piecetrain.sentences`
  - `MultiFileSentenceIterator(files)`: yields the lines of several files
    in turn, without their newlines.
  - `ReservoirSampler(size, seed=None, sampled=None)`: a uniform random
    sample of at most `size` items.
  - `SentenceSelector(sentences, spec)`: keeps at most
    `input_sentence_size` sentences, the first ones or a random sample
    when `shuffle_input_sentence` is set.
  - `sorted_by_frequency(items)`: pairs by descending value, ties by key.
- `piecetrain.trainer_interface`
  - `verify_spec(trainer_spec)`: range checks on the trainer spec.
  - `byte_to_piece(byte)`: `<0x00>` … `<0xFF>`.
  - `TrainerInterface(trainer_spec, normalizer_spec, denormalizer_spec)`:
    checks the spec and assigns the meta pieces (unknown, BOS, EOS, PAD,
    control, user-defined and byte pieces) to ids in `meta_pieces`.
    - `is_valid_sentencepiece(piece)`: whether a string may become a piece
      under the length, whitespace, script and digit settings.
    - `load_sentences(sentence_iterator=None)`: reads sentences from the
      iterator or from `trainer_spec.input`, supports `text` and `tsv`
      (`word<TAB>freq`) input, normalizes whitespace, fills
      `required_chars` according to `character_coverage` and
      `required_chars`, and replaces other characters with `▅`.
    - `serialize()`: builds a `ModelProto` (a list of `ModelPiece` plus the
      specs) from the meta pieces and `final_pieces`.
    - `save_vocab(filename)` and `save()`: `save()` returns the model and,
      when `model_prefix` is set, writes `<prefix>.model` as JSON and
      `<prefix>.vocab` as one piece per line (with its score when
      `vocabulary_output_piece_score` is set).
    - `train()`: re-checks the spec.

## Example

```python
from piecetrain.specs import NormalizerSpec, TrainerSpec, set_proto_field
from piecetrain.trainer import merge_specs_from_args
from piecetrain.trainer_interface import TrainerInterface

trainer_spec, normalizer_spec, denormalizer_spec = merge_specs_from_args(
    "--vocab_size=100 --model_type=bpe --hard_vocab_limit=false",
    TrainerSpec(), NormalizerSpec(), NormalizerSpec(),
)
set_proto_field("split_by_whitespace", "false", trainer_spec)

trainer = TrainerInterface(trainer_spec, normalizer_spec, denormalizer_spec)
trainer.load_sentences(["hello world", "hello there"])
print(trainer.sentences)        # [('▁hello▁world', 1), ('▁hello▁there', 1)]
print(trainer.required_chars)   # character -> frequency

trainer.final_pieces = [("▁hello", -1.0), ("▁world", -2.0)]
model = trainer.serialize()
print([p.piece for p in model.pieces])
```

## What the package does not do

- It learns no pieces. `TrainerInterface.train()` only checks the spec;
  there are no unigram, BPE, word or character training algorithms, so
  `final_pieces` must be filled by the caller.
- It does not encode or decode text with a model, and the saved model
  carries no self-test samples.
- Normalization is limited to whitespace handling (removing extra spaces,
  the dummy prefix and escaping spaces as `▁`). Named rules and
  `normalization_rule_tsv` files are stored in the spec but not compiled,
  and `load_sentences` rejects a spec that carries a
  `precompiled_charsmap`.
- Models are written as JSON, not in a binary format.
- There is no command-line program.

## Running the tests

```
pip install -e .[test]
pytest
```