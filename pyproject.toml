[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "piecetrain"
version = "0.1.84"
description = "Training-side building blocks for subword tokenizers: trainer and normalizer specs, sentence loading, piece validation and vocabulary output."
requires-python = ">=3.10"
dependencies = []
keywords = ["tokenizer", "subword", "nlp", "vocabulary", "unigram", "bpe", "training"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Text Processing :: Linguistic",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["piecetrain"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
