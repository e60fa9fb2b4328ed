"""SAMS Deploy - deployment orchestration and verification for the SAMS apps."""

__version__ = "1.0.0"
