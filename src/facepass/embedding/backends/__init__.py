"""Inference backends for the learned embedding strategy."""

from facepass.embedding.backends.onnx import OnnxInferenceBackend

__all__ = ["OnnxInferenceBackend"]
