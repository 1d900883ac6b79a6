"""QR token generation and image rendering."""
import base64
import io
import secrets

import qrcode


class QRService:
    """Service for QR code operations."""

    @staticmethod
    def generate_token() -> str:
        """Opaque token; the client must echo it back exactly."""
        return secrets.token_urlsafe(32)

    @staticmethod
    def render_image(token: str) -> str:
        """Render the token as a PNG data URL for the teacher's screen."""
        qr = qrcode.QRCode(
            version=None,  # Auto-determine size
            error_correction=qrcode.constants.ERROR_CORRECT_H,
            box_size=10,
            border=4,
        )
        qr.add_data(token)
        qr.make(fit=True)
        
        img = qr.make_image(fill_color="black", back_color="white")
        
        buffered = io.BytesIO()
        img.save(buffered, format="PNG")
        img_str = base64.b64encode(buffered.getvalue()).decode()
        
        return f"data:image/png;base64,{img_str}"

    @staticmethod
    def token_matches(submitted, current) -> bool:
        return isinstance(submitted, str) and current is not None and secrets.compare_digest(submitted, current)
