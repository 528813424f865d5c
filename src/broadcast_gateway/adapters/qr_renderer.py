"""Render pairing codes as QR images."""

import base64
import io

import qrcode


def render_qr_data_url(code: str) -> str:
    """Render a pairing code as a PNG data URL."""
    if not code:
        raise ValueError("Pairing code is empty")
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=8,
        border=4,
    )
    qr.add_data(code)
    qr.make(fit=True)
    img = qr.make_image(fill_color="#000000", back_color="#FFFFFF").convert("RGB")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    encoded = base64.b64encode(buf.getvalue()).decode("ascii")
    return f"data:image/png;base64,{encoded}"
