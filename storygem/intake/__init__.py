"""
Story request intake.
"""

from .photo import InspectedPhoto, PhotoUpload, inspect_photo
from .service import IntakeService

__all__ = ["InspectedPhoto", "IntakeService", "PhotoUpload", "inspect_photo"]
