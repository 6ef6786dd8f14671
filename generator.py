import logging
from typing import Optional

from openai import OpenAI

from config import AgentConfig

# ==========================================
# Code Generator: prompt -> candidate source
# ==========================================

logger = logging.getLogger(__name__)


class GenerationError(Exception):
    """The model call failed or returned nothing usable."""


def extract_code_blocks(text: str) -> str:
    """Extracts java code from markdown formatting returned by the LLM."""
    if "```java" in text:
        parts = text.split("```java")
        return parts[1].split("```")[0].strip()
    elif "```" in text:
        parts = text.split("```")
        return parts[1].strip()
    return text.strip()


class CodeGenerator:
    """Calls an OpenAI-compatible chat endpoint with the configured model settings."""

    def __init__(self, config: AgentConfig, client: Optional[OpenAI] = None):
        self.config = config
        self.client = client or OpenAI(api_key=config.api_key, base_url=config.base_url)

    def generate(self, prompt: str) -> str:
        logger.info("Generating code with %s (%d char prompt)", self.config.model_name, len(prompt))
        try:
            response = self.client.chat.completions.create(
                model=self.config.model_name,
                messages=[{"role": "user", "content": prompt}],
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
            )
            content = response.choices[0].message.content
        except Exception as e:
            raise GenerationError(f"Code generation failed: {e}") from e

        if not content or not content.strip():
            raise GenerationError("Code generation returned an empty completion")

        code = extract_code_blocks(content)
        logger.info("Generated %d characters of code", len(code))
        return code
