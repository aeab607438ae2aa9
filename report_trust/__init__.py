"""Report trust & integrity engine package.

Having this file ensures the 'report_trust' directory is recognized as a
standard Python package during test discovery and installation.
"""

__all__: list[str] = []
