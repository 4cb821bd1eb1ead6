from __future__ import annotations

import io
from typing import BinaryIO, Union

from PIL import Image
from pyzbar.pyzbar import decode as pyzbar_decode


def decode_qr_values(image: Image.Image) -> list[str]:
    """Text payloads of every barcode/QR code found in an image, in detection order."""
    decoded = pyzbar_decode(image.convert("RGB"))
    values = []
    for symbol in decoded:
        text = symbol.data.decode("utf-8", errors="replace").strip()
        if text:
            values.append(text)
    return values


def decode_qr_upload(stream: Union[BinaryIO, bytes]) -> list[str]:
    """Decode an uploaded image file (camera frame)."""
    if isinstance(stream, (bytes, bytearray)):
        stream = io.BytesIO(stream)
    with Image.open(stream) as img:
        return decode_qr_values(img)
