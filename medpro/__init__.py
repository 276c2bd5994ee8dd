"""
MedPro - practitioner client for the MedPro clinical backend
"""

__version__ = "1.0.0"
__author__ = "MedPro Team"
__description__ = "Assistant sessions, patient history and scheduling client for MedPro practitioners"

__all__ = [
    "__version__",
    "__author__",
    "__description__",
]
