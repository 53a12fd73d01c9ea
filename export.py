"""Image encoding for rendered canvases.

PNG goes through Pillow; BMP is written directly so a rendering can always
be saved.
"""

from __future__ import annotations

import os
import struct

from canvas import PixelCanvas


def save_png(path: str, canvas: PixelCanvas, compress_level: int = 6) -> None:
    from PIL import Image

    im = Image.frombytes("RGBA", (canvas.width, canvas.height), canvas.to_bytes())
    im.save(path, format="PNG", compress_level=max(0, min(9, int(compress_level))))


def save_bmp(path: str, canvas: PixelCanvas) -> None:
    # Write a simple 32-bit BMP (BGRA) uncompressed
    width, height = canvas.width, canvas.height
    pixels = canvas.buffer
    with open(path, "wb") as handle:
        row_bytes = width * 4
        # File header (14 bytes)
        bfOffBits = 14 + 40  # file header + info header
        bfSize = bfOffBits + (row_bytes * height)
        handle.write(struct.pack("<2sIHHI", b"BM", bfSize, 0, 0, bfOffBits))
        # BITMAPINFOHEADER (40 bytes), positive height means bottom-up rows
        handle.write(struct.pack("<IIIHHIIIIII", 40, width, height, 1, 32, 0, row_bytes * height, 0, 0, 0, 0))
        for y in range(height - 1, -1, -1):
            # RGBA -> BGRA
            handle.write(pixels[y][:, [2, 1, 0, 3]].tobytes())


def save_image(path: str, canvas: PixelCanvas) -> None:
    ext = os.path.splitext(path)[1].lower()
    if ext == ".bmp":
        save_bmp(path, canvas)
    else:
        save_png(path, canvas)
