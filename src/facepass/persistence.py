"""JSON persistence for face templates.

One file per user with numpy ndarray <-> list conversion and ``_version``
metadata. Vectors are re-normalized on load.
"""

from __future__ import annotations

import json
import logging
import os
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import numpy as np

from facepass.errors import StoreError
from facepass.geometry import l2_normalize
from facepass.types import FaceTemplate

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1
_SAFE_ID = re.compile(r"^[A-Za-z0-9_.@-]+$")


def save_template(template: FaceTemplate, path: str | Path) -> None:
    """Save a template to JSON.

    Args:
        template: Template to save.
        path: Output JSON file path.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    data = {
        "embeddings": [np.asarray(e, dtype=np.float32).tolist() for e in template.embeddings],
        "created_at": template.created_at.isoformat(),
        "_version": {
            "app": "facepass",
            "format": FORMAT_VERSION,
            "strategy": template.strategy,
            "dim": template.dim,
            "saved_at": datetime.now(timezone.utc).isoformat(),
        },
    }

    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
    os.replace(tmp_path, path)


def load_template(path: str | Path) -> FaceTemplate:
    """Load a template from JSON.

    Raises:
        FileNotFoundError: If the file does not exist.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Template file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    version = data.get("_version", {})
    embeddings = [
        l2_normalize(np.array(vec, dtype=np.float32)) for vec in data.get("embeddings", [])
    ]
    return FaceTemplate(
        embeddings=embeddings,
        created_at=datetime.fromisoformat(data["created_at"]),
        strategy=version.get("strategy", "learned"),
    )


class JsonTemplateStore:
    """Template store writing ``<root>/<user_id>.json``.

    Args:
        root: Directory holding the files; defaults to
            :func:`facepass.paths.get_templates_dir`.
    """

    def __init__(self, root: Optional[Path] = None):
        if root is None:
            from facepass.paths import get_templates_dir
            root = get_templates_dir()
        self.root = Path(root)

    def _path(self, user_id: str) -> Path:
        if not _SAFE_ID.match(user_id):
            raise StoreError(f"Invalid user id for file storage: {user_id!r}")
        return self.root / f"{user_id}.json"

    def get(self, user_id: str) -> Optional[FaceTemplate]:
        path = self._path(user_id)
        if not path.exists():
            return None
        try:
            return load_template(path)
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise StoreError(f"Failed to load template for {user_id}: {e}") from e

    def save(self, user_id: str, template: FaceTemplate) -> None:
        path = self._path(user_id)
        try:
            save_template(template, path)
        except OSError as e:
            raise StoreError(f"Failed to save template for {user_id}: {e}") from e
        logger.info(
            "Saved %s template for %s (%d embeddings)",
            template.strategy, user_id, len(template.embeddings),
        )

    def delete(self, user_id: str) -> None:
        path = self._path(user_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            raise StoreError(f"Failed to delete template for {user_id}: {e}") from e
        logger.info("Deleted template for %s", user_id)


__all__ = ["FORMAT_VERSION", "save_template", "load_template", "JsonTemplateStore"]
