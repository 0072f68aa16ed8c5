"""relnotes: live, section-tagged release notes from a streaming language model."""

__version__ = "0.1.0"
