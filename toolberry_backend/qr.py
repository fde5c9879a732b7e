from __future__ import annotations

from pathlib import Path

import qrcode
from PIL import Image
from qrcode.constants import ERROR_CORRECT_H, ERROR_CORRECT_L, ERROR_CORRECT_M, ERROR_CORRECT_Q

from .config import QR_DARK_COLOR, QR_ERROR_CORRECTION, QR_LIGHT_COLOR, QR_MARGIN, QR_SIZE_PX


_ERROR_CORRECTION_LEVELS = {
    "L": ERROR_CORRECT_L,
    "M": ERROR_CORRECT_M,
    "Q": ERROR_CORRECT_Q,
    "H": ERROR_CORRECT_H,
}


def render_qr(
    text: str,
    dest: Path,
    *,
    size: int = QR_SIZE_PX,
    margin: int = QR_MARGIN,
    dark: str = QR_DARK_COLOR,
    light: str = QR_LIGHT_COLOR,
    error_correction: str = QR_ERROR_CORRECTION,
) -> Path:
    """Render `text` as a square PNG of `size` pixels at `dest`.

    Raises qrcode.exceptions.DataOverflowError when the text does not fit.
    """
    try:
        level = _ERROR_CORRECTION_LEVELS[error_correction.upper()]
    except KeyError:
        raise ValueError(f"Unknown error correction level: {error_correction}")

    qr = qrcode.QRCode(error_correction=level, border=margin)
    qr.add_data(text)
    qr.make(fit=True)

    # Pick the largest whole-pixel module size that fits, then scale to the exact size.
    qr.box_size = max(1, size // (qr.modules_count + 2 * margin))
    image = qr.make_image(fill_color=dark, back_color=light).get_image()
    if image.size != (size, size):
        image = image.resize((size, size), Image.Resampling.NEAREST)
    image.save(dest, format="PNG")
    return dest
