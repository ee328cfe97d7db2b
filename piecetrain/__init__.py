"""Specs, sentence loading, piece validation and vocabulary output for training subword tokenizers."""

__version__ = "0.1.84"

__all__ = ["specs", "unicode_script", "trainer", "sentences", "trainer_interface"]