"""Document-understanding providers and the failover chain that drives them."""

from .base import (
    AnswerCandidate,
    AssessmentContext,
    BoundingBox,
    HeaderCandidate,
    ProviderAdapter,
    QuestionCandidate,
    RenderedPage,
    TopicWeight,
)
from .chain import ChainResult, ProviderChain

__all__ = [
    "AnswerCandidate",
    "AssessmentContext",
    "BoundingBox",
    "ChainResult",
    "HeaderCandidate",
    "ProviderAdapter",
    "ProviderChain",
    "QuestionCandidate",
    "RenderedPage",
    "TopicWeight",
]
