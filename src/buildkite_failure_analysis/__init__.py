"""AI-powered build failure analysis for Buildkite pipelines."""

__version__ = "0.1.0"
