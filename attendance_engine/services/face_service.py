"""Face descriptor comparison.

Descriptors are computed on the device (128 floats from a face-api style
model); the server only compares them with the enrolled reference.
"""
from typing import Dict, Optional, Sequence

import numpy as np

from attendance_engine.utils import clock
from attendance_engine.utils.errors import ValidationError

DEFAULT_THRESHOLD = 0.55


class FaceService:
    """Service for face identity checks."""

    @staticmethod
    def to_vector(descriptor) -> np.ndarray:
        if not isinstance(descriptor, (list, tuple)) or not descriptor:
            raise ValidationError("faceDescriptor must be a non-empty list of numbers")
        try:
            vector = np.asarray(descriptor, dtype=np.float64)
        except (TypeError, ValueError):
            raise ValidationError("faceDescriptor must be a non-empty list of numbers")
        if vector.ndim != 1 or not np.all(np.isfinite(vector)):
            raise ValidationError("faceDescriptor must be a flat list of finite numbers")
        return vector

    @staticmethod
    def distance(descriptor: Sequence[float], reference: Sequence[float]) -> float:
        """Euclidean distance between two descriptors."""
        a = FaceService.to_vector(descriptor)
        b = FaceService.to_vector(reference)
        if a.shape != b.shape:
            raise ValidationError("faceDescriptor length does not match the enrolled face")
        return float(np.linalg.norm(a - b))

    @staticmethod
    def verify(descriptor, reference, threshold: float = DEFAULT_THRESHOLD) -> Dict:
        """Returns ``{verified, distance}``; no reference means not verified."""
        if reference is None:
            return {'verified': False, 'distance': None}
        distance = FaceService.distance(descriptor, reference)
        return {'verified': distance < threshold, 'distance': round(distance, 4)}

    @staticmethod
    def resolve_face_input(data: dict, user, threshold: float = DEFAULT_THRESHOLD) -> Dict:
        """Turn a mark payload into ``{verified, distance}``.

        ``faceDescriptor`` wins over a bare ``faceVerified`` flag when both
        are present.
        """
        descriptor = data.get('faceDescriptor')
        if descriptor is not None:
            return FaceService.verify(descriptor, user.face_descriptor, threshold)

        verified = data.get('faceVerified')
        if not isinstance(verified, bool):
            raise ValidationError("faceVerified (boolean) or faceDescriptor is required")
        return {'verified': verified, 'distance': None}

    @staticmethod
    def enroll(user, descriptor) -> Optional[str]:
        vector = FaceService.to_vector(descriptor)
        user.face_descriptor = [float(x) for x in vector]
        user.face_enrolled_at = clock.now()
        user.save()
        return clock.isoformat(user.face_enrolled_at)
