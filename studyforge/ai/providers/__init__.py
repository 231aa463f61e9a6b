"""Generative model providers."""

from studyforge.ai.providers.base import AIModel, ModelResponse, Provider, SimpleModelResponse

__all__ = ["AIModel", "ModelResponse", "Provider", "SimpleModelResponse"]
