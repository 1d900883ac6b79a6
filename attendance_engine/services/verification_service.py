"""Proof-of-presence checks and the late/status classifier."""
from datetime import datetime
from typing import Dict, Optional, Tuple

from attendance_engine.models.attendance import FACE_FAILED, LATE, PRESENT
from attendance_engine.models.attendance_session import AttendanceSession
from attendance_engine.services.gps_service import GPSService
from attendance_engine.services.qr_service import QRService
from attendance_engine.utils import clock
from attendance_engine.utils.errors import VerificationFailure, ValidationError


class VerificationService:
    """Verifies a mark against the session's configured method."""

    @staticmethod
    def verify_proof(session: AttendanceSession, proof: dict) -> Dict:
        """Raise :class:`VerificationFailure` unless ``proof`` satisfies the session.

        Returns location details kept on the record (gps only).
        """
        if not isinstance(proof, dict):
            raise ValidationError("proof must be an object")

        if session.method == 'qr':
            if not QRService.token_matches(proof.get('qrCode'), session.qr_code):
                raise VerificationFailure("Invalid or expired QR code", code='INVALID_QR')
            return {}

        if session.method == 'gps':
            lat, lng = proof.get('lat', proof.get('latitude')), proof.get('lng', proof.get('longitude'))
            if lat is None or lng is None:
                raise ValidationError("proof lat and lng are required for GPS sessions")
            lat, lng = GPSService.parse_coordinates(lat, lng)
            result = GPSService.verify_location(lat, lng, session)
            if not result['is_inside']:
                raise VerificationFailure(
                    "You are outside the allowed range",
                    code='OUT_OF_RANGE',
                    payload={'distance': result['distance'], 'allowed': result['allowed']}
                )
            return {'latitude': lat, 'longitude': lng}

        if session.method == 'network':
            ssid = proof.get('ssid')
            if not isinstance(ssid, str) or ssid != session.expected_ssid:
                raise VerificationFailure("Connect to the classroom network to mark attendance",
                                          code='WRONG_NETWORK')
            return {}

        # bluetooth: the session lookup is the whole check
        return {}

    @staticmethod
    def classify(session: AttendanceSession, face_verified: bool,
                 at: Optional[datetime] = None) -> Tuple[str, Optional[bool]]:
        """Return ``(status, teacher_approved)`` for a verified mark.

        Lateness is strict: exactly ``late_after_minutes`` after start is
        still present.
        """
        if not face_verified:
            return FACE_FAILED, False
        elapsed = session.elapsed_minutes(at or clock.now())
        if elapsed > session.late_after_minutes:
            return LATE, None
        return PRESENT, True
