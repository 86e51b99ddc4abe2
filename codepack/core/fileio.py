# codepack/core/fileio.py
import os
import tempfile
from pathlib import Path
from typing import Optional
from loguru import logger


def atomic_write_text(target: "str | Path", text: str) -> Path:
    """
    Writes `text` to `target` via a temporary file in the same directory and
    os.replace, so readers see either the old or the new file, never a mix.
    Raises OSError on failure after removing the temporary file.
    """
    target = Path(target)
    target.parent.mkdir(parents=True, exist_ok=True)
    temp_file_path: Optional[Path] = None
    try:
        with tempfile.NamedTemporaryFile(
            mode='w',
            encoding='utf-8',
            newline='',
            dir=target.parent,
            prefix=f".{target.name}_tmp",
            suffix=target.suffix,
            delete=False # Keep the file after closing for os.replace
        ) as temp_f:
            temp_file_path = Path(temp_f.name)
            logger.trace(f"Writing to temporary file: {temp_file_path}")
            temp_f.write(text)
            temp_f.flush()
            os.fsync(temp_f.fileno())
        os.replace(temp_file_path, target)
        temp_file_path = None
        return target
    finally:
        if temp_file_path and temp_file_path.exists():
            logger.warning(f"Cleaning up leftover temporary file: {temp_file_path}")
            try: temp_file_path.unlink()
            except OSError as unlink_err: logger.error(f"Failed to remove temporary file {temp_file_path}: {unlink_err}")
