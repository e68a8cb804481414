"""Where facepass keeps models and enrolled templates.

Layout under the home directory (``~/.facepass`` unless ``FACEPASS_HOME``
is set)::

    models/      ONNX embedding models   (FACEPASS_MODELS_DIR)
    templates/   JsonTemplateStore files (FACEPASS_TEMPLATES_DIR)

A relative override is resolved against the current working directory.
Every getter creates its directory on first use.
"""

import os
from pathlib import Path
from typing import Callable


def _resolve(env_var: str, default: Callable[[], Path]) -> Path:
    override = os.environ.get(env_var)
    path = Path(override) if override else default()
    if not path.is_absolute():
        path = Path.cwd() / path
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_home_dir() -> Path:
    return _resolve("FACEPASS_HOME", lambda: Path.home() / ".facepass")


def get_models_dir() -> Path:
    """Directory searched by :class:`OnnxInferenceBackend` for model files."""
    return _resolve("FACEPASS_MODELS_DIR", lambda: get_home_dir() / "models")


def get_templates_dir() -> Path:
    """Default root of :class:`facepass.persistence.JsonTemplateStore`."""
    return _resolve("FACEPASS_TEMPLATES_DIR", lambda: get_home_dir() / "templates")


__all__ = ["get_home_dir", "get_models_dir", "get_templates_dir"]
