"""Generative analysis for TeamPulse.

Provides the LiteLLM-backed model client, the provider registry, prompt
construction, data sanitization, response parsing and the GenerativeAnalyzer
that ties them together. Supports Claude, OpenAI, Gemini, Ollama and Bedrock.
"""

from teampulse.llm.analyzer import GenerativeAnalyzer, assess_complexity
from teampulse.llm.client import LLMClient, LLMError, LLMResponse, create_client
from teampulse.llm.parser import ResponseParser, parse_response
from teampulse.llm.performance import PerformanceMonitor, calculate_cost
from teampulse.llm.prompts import (
    PROMPT_TEMPLATES,
    Prompt,
    PromptBuilder,
    PromptTemplate,
    estimate_tokens,
    select_template,
)
from teampulse.llm.providers import (
    InsightProvider,
    ProviderNotAvailableError,
    ProviderRegistry,
    ProviderResponse,
    get_registry,
    reset_registry,
    setup_default_providers,
)
from teampulse.llm.sanitizer import DataSanitizer
from teampulse.models.llm_config import VALID_PROVIDERS, LLMConfig

__all__ = [
    "DataSanitizer",
    "GenerativeAnalyzer",
    "InsightProvider",
    "LLMClient",
    "LLMConfig",
    "LLMError",
    "LLMResponse",
    "PROMPT_TEMPLATES",
    "PerformanceMonitor",
    "Prompt",
    "PromptBuilder",
    "PromptTemplate",
    "ProviderNotAvailableError",
    "ProviderRegistry",
    "ProviderResponse",
    "ResponseParser",
    "VALID_PROVIDERS",
    "assess_complexity",
    "calculate_cost",
    "create_client",
    "estimate_tokens",
    "get_registry",
    "parse_response",
    "reset_registry",
    "select_template",
    "setup_default_providers",
]
