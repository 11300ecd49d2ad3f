"""Base error for codex-spp setup and governance failures."""


class SppError(RuntimeError):
    """Raised before persisted state is touched; the CLI reports it on one line."""


__all__ = ["SppError"]
