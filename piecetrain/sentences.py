"""Reading, sampling and ordering of training sentences."""

from __future__ import annotations

import logging
import random
from collections.abc import Iterable, Iterator, Mapping
from typing import Generic, Hashable, Sequence, TypeVar

from piecetrain.specs import TrainerSpec

logger = logging.getLogger("piecetrain")

T = TypeVar("T")
K = TypeVar("K", bound=Hashable)

Sentence = tuple[str, int]


class MultiFileSentenceIterator:
    """Iterates over the lines of several files, one file after another.

    Lines are returned without their trailing newline. A file that cannot
    be opened ends the iteration with the error that opening it raised.
    """

    def __init__(self, files: Sequence[str]) -> None:
        self.files = list(files)

    def __iter__(self) -> Iterator[str]:
        for filename in self.files:
            logger.info("Loading corpus: %s", filename)
            with open(filename, encoding="utf-8", newline="") as stream:
                for line in stream:
                    yield line[:-1] if line.endswith("\n") else line


class ReservoirSampler(Generic[T]):
    """Keeps a uniform random sample of at most ``size`` added items."""

    def __init__(self, size: int, seed: int | None = None,
                 sampled: list[T] | None = None) -> None:
        self.size = size
        self.sampled: list[T] = sampled if sampled is not None else []
        self.total_size = 0
        self._random = random.Random(seed)

    def add(self, item: T) -> None:
        """Offer one item to the sample."""
        if self.size <= 0:
            return
        self.total_size += 1
        if len(self.sampled) < self.size:
            self.sampled.append(item)
            return
        index = self._random.randint(0, self.total_size - 1)
        if index < len(self.sampled):
            self.sampled[index] = item


class SentenceSelector:
    """Collects sentences, keeping at most ``input_sentence_size`` of them.

    With ``shuffle_input_sentence`` the kept sentences are a random sample
    of all added ones; otherwise the first ones are kept.
    """

    TOO_BIG_SENTENCES_SIZE = 1_000_000
    SEED = 12345678

    def __init__(self, sentences: list[Sentence], spec: TrainerSpec) -> None:
        self.sentences = sentences
        self.spec = spec
        self._sampler: ReservoirSampler[Sentence] | None = None
        if spec.input_sentence_size > 0:
            if spec.shuffle_input_sentence:
                self._sampler = ReservoirSampler(
                    spec.input_sentence_size, self.SEED, sentences
                )
            else:
                logger.info(
                    "First %d sentences are selected. "
                    "Remaining sentences are discarded.",
                    spec.input_sentence_size,
                )

    @property
    def total_size(self) -> int:
        """Number of sentences seen so far."""
        if self._sampler is not None:
            return self._sampler.total_size
        return len(self.sentences)

    def add(self, sentence: Sentence) -> bool:
        """Add a sentence; return False once no more sentences are wanted."""
        limit = self.spec.input_sentence_size
        if limit == 0:
            self.sentences.append(sentence)
        elif self._sampler is not None:
            self._sampler.add(sentence)
        else:
            self.sentences.append(sentence)
            if len(self.sentences) >= limit:
                return False

        total = self.total_size
        if total > 0 and total % self.TOO_BIG_SENTENCES_SIZE == 0:
            logger.info("Loaded %d lines", total)
        return True

    def finish(self) -> None:
        """Warn when so many sentences were kept that training gets slow."""
        if len(self.sentences) > self.TOO_BIG_SENTENCES_SIZE:
            logger.warning(
                "Too many sentences are loaded! (%d), which may slow down training.",
                len(self.sentences),
            )
            logger.warning(
                "Consider using --input_sentence_size=<size> and "
                "--shuffle_input_sentence=true."
            )
            logger.warning(
                "They allow to randomly sample <size> sentences from the entire corpus."
            )


def sorted_by_frequency(
    items: Mapping[K, T] | Iterable[tuple[K, T]],
) -> list[tuple[K, T]]:
    """Return (key, value) pairs by descending value, ties by ascending key."""
    pairs = list(items.items()) if isinstance(items, Mapping) else list(items)
    pairs.sort(key=lambda pair: pair[0])
    pairs.sort(key=lambda pair: pair[1], reverse=True)
    return pairs