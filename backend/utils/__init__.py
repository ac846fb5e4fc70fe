"""
Shared helpers for the API layer and the ffmpeg toolchain.
"""

from .error_handlers import handle_api_errors

__all__ = ["handle_api_errors"]
