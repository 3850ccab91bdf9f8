import os
import tempfile


def save_certificate(out_path: str, pdf_bytes: bytes) -> str:
    """Write a rendered certificate next to its target, then rename into place.

    Returns the absolute path written. Parent directories are created.
    """
    target = os.path.abspath(out_path)
    out_dir = os.path.dirname(target)
    os.makedirs(out_dir, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=out_dir, suffix=".pdf.part")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(pdf_bytes)
        os.replace(tmp_path, target)
    finally:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
    return target
