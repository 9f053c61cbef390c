# src/llmsession/providers/__init__.py
"""
Model invokers.

`BaseInvoker` is the seam the responder depends on; `OpenAIInvoker` is the
concrete OpenAI integration.
"""

from .base import BaseInvoker
from .openai_provider import OpenAIInvoker

__all__ = ["BaseInvoker", "OpenAIInvoker"]
