"""Concrete host adapters.

``SounddevicePreviewHost`` needs PortAudio at import time, so it is
imported lazily through :func:`preview_host`.
"""

from .soundfile_host import SoundfileHost


def preview_host(device=None):
    """Create a :class:`SounddevicePreviewHost` (imports sounddevice)."""
    from .sounddevice_preview import SounddevicePreviewHost
    return SounddevicePreviewHost(device=device)


__all__ = ["SoundfileHost", "preview_host"]
