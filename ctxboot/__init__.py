"""A dependency-injection component context and registration code generator."""

__version__ = "0.1.0"

__all__ = ["container", "scanner", "codegen", "demo"]