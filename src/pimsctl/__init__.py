"""pimsctl — per-domain OpenPIMS request tagging engine and CLI."""

__version__ = "0.1.0"
