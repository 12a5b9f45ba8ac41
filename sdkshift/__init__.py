"""sdkshift: batch migration of legacy MSBuild projects to SDK-style."""

__version__ = "0.1.0"
