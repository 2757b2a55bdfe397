"""Generate QR code PNG files for issued share links.

Parents without a device to click a link can scan the code printed on a
letter or shown on a projector. QR generation is optional and can be turned
off with ``sharing.generate_qr``.

**Output Contract:**
- Writes one PNG per issued link to ``<output_dir>/qr_codes/``
- Returns the list of generated paths
- Per-link failures are logged and skipped; some links may lack a code
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from typing import List, Optional, Sequence

import qrcode
from qrcode import constants as qrcode_constants

from .data_models import IssuedLink
from .utils import slugify

LOG = logging.getLogger(__name__)


def generate_qr_code(
    data: str,
    output_dir: Path,
    *,
    filename: Optional[str] = None,
) -> Path:
    """Generate a monochrome QR code PNG and return the saved path.

    Parameters
    ----------
    data:
        The string payload to encode inside the QR code.
    output_dir:
        Directory where the image is saved; created if missing.
    filename:
        Optional file name (including extension). When omitted a
        deterministic name derived from the payload hash is used.

    Returns
    -------
    Path
        Path to the generated PNG file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode_constants.ERROR_CORRECT_L,
        box_size=10,
        border=4,
    )
    qr.add_data(data)
    qr.make(fit=True)

    image = qr.make_image(fill_color="black", back_color="white")
    pil_image = getattr(image, "get_image", lambda: image)()
    # 1-bit without dithering keeps module edges crisp.
    pil_bitmap = pil_image.convert("1", dither=0)

    if not filename:
        digest = hashlib.sha1(data.encode("utf-8")).hexdigest()[:12]
        filename = f"qr_{digest}.png"

    target_path = output_dir / filename
    pil_bitmap.save(target_path, format="PNG", bits=1)
    return target_path


def generate_link_qr_codes(links: Sequence[IssuedLink], output_dir: Path) -> List[Path]:
    """Write a QR code for every link's URL.

    Files are named ``qr_<student_id>_<name-slug>.png``.
    """
    qr_output_dir = output_dir / "qr_codes"
    generated: List[Path] = []
    for link in links:
        filename = f"qr_{slugify(link.student_id)}_{slugify(link.student_name)}.png"
        try:
            path = generate_qr_code(link.url, qr_output_dir, filename=filename)
        except (OSError, ValueError) as exc:
            LOG.warning("Could not generate QR code for %s: %s", link.student_name, exc)
            continue
        generated.append(path)
        LOG.info("Generated QR code for %s: %s", link.student_name, path)
    return generated


if __name__ == "__main__":
    raise RuntimeError(
        "generate_qr_codes.py should not be invoked directly. Use the reportcards CLI instead."
    )
