"""Template substitution and predefined prompt templates."""

from __future__ import annotations

import json
import re
from typing import Any, Dict, Mapping

from pydantic import BaseModel

from .errors import NotFoundError

# Plain keys as well as step ids (uuids) may appear in a placeholder.
_PLACEHOLDER = re.compile(r"\{\{([\w-]+)\}\}")


def _maybe_json(value: str) -> Any:
    stripped = value.strip()
    if stripped.startswith(("{", "[")):
        try:
            return json.loads(stripped)
        except ValueError:
            pass
    return value


def _pretty(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False)


def _format_value(value: Any) -> str:
    if isinstance(value, str):
        value = _maybe_json(value)

    if isinstance(value, (dict, list)):
        # AI steps with the default schema wrap their answer as {"result": "..."}.
        if isinstance(value, dict) and isinstance(value.get("result"), str):
            try:
                return _pretty(json.loads(value["result"]))
            except ValueError:
                pass
        return _pretty(value)

    if isinstance(value, bool) or value is None:
        return json.dumps(value)
    return str(value)


def render_template(template: str, variables: Mapping[str, Any]) -> str:
    """Replace ``{{key}}`` placeholders with values from ``variables``.

    Objects and JSON-looking strings are pretty-printed; keys that are not
    present are left untouched.
    """

    def _replace(match: re.Match) -> str:
        key = match.group(1)
        if key not in variables:
            return match.group(0)
        return _format_value(variables[key])

    return _PLACEHOLDER.sub(_replace, template)


class PromptTemplate(BaseModel):
    name: str
    description: str
    system_prompt: str
    user_prompt_template: str
    output_schema: Dict[str, Any]


class BuiltPrompt(BaseModel):
    system_prompt: str
    user_prompt: str
    output_schema: Dict[str, Any]


PROMPT_TEMPLATES: Dict[str, PromptTemplate] = {
    "extractData": PromptTemplate(
        name="extractData",
        description="Extract structured data from unstructured text",
        system_prompt=(
            "You are a data extraction assistant. Your job is to carefully analyze "
            "text and extract specific information in a structured JSON format. Be "
            "precise and only include information that is explicitly stated in the text."
        ),
        user_prompt_template=(
            "Extract the following fields from this text:\n"
            "Fields to extract: {{fields}}\n\n"
            "Text:\n{{text}}\n\n"
            "Respond with a JSON object containing the extracted data."
        ),
        output_schema={"type": "object", "additionalProperties": True},
    ),
    "summarize": PromptTemplate(
        name="summarize",
        description="Create a summary of the provided content",
        system_prompt=(
            "You are a summarization assistant. Create concise, accurate summaries "
            "that capture the key points of the provided content."
        ),
        user_prompt_template=(
            "Summarize the following content in {{style}} style:\n\n"
            "{{content}}\n\n"
            "Provide a summary that is approximately {{length}} words."
        ),
        output_schema={
            "type": "object",
            "properties": {
                "summary": {"type": "string"},
                "keyPoints": {"type": "array", "items": {"type": "string"}},
                "wordCount": {"type": "number"},
            },
            "required": ["summary", "keyPoints"],
        },
    ),
    "classify": PromptTemplate(
        name="classify",
        description="Classify content into predefined categories",
        system_prompt=(
            "You are a classification assistant. Analyze content and assign it to "
            "the most appropriate category from the provided options."
        ),
        user_prompt_template=(
            "Classify the following content into one of these categories: "
            "{{categories}}\n\n"
            "Content:\n{{content}}\n\n"
            "Provide the classification with a confidence score."
        ),
        output_schema={
            "type": "object",
            "properties": {
                "category": {"type": "string"},
                "confidence": {"type": "number", "minimum": 0, "maximum": 1},
                "reasoning": {"type": "string"},
            },
            "required": ["category", "confidence"],
        },
    ),
    "analyzeSentiment": PromptTemplate(
        name="analyzeSentiment",
        description="Analyze the sentiment of text content",
        system_prompt=(
            "You are a sentiment analysis assistant. Analyze the emotional tone and "
            "sentiment of the provided text."
        ),
        user_prompt_template="Analyze the sentiment of the following text:\n\n{{text}}",
        output_schema={
            "type": "object",
            "properties": {
                "sentiment": {
                    "type": "string",
                    "enum": ["positive", "negative", "neutral", "mixed"],
                },
                "score": {"type": "number", "minimum": -1, "maximum": 1},
                "emotions": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "emotion": {"type": "string"},
                            "intensity": {"type": "number", "minimum": 0, "maximum": 1},
                        },
                    },
                },
            },
            "required": ["sentiment", "score"],
        },
    ),
    "generateResponse": PromptTemplate(
        name="generateResponse",
        description="Generate a response based on context and instructions",
        system_prompt=(
            "You are a professional assistant. Generate appropriate responses based "
            "on the provided context and instructions."
        ),
        user_prompt_template=(
            "{{instructions}}\n\n"
            "Context:\n{{context}}\n\n"
            "Generate an appropriate response."
        ),
        output_schema={
            "type": "object",
            "properties": {
                "response": {"type": "string"},
                "tone": {"type": "string"},
                "suggestions": {"type": "array", "items": {"type": "string"}},
            },
            "required": ["response"],
        },
    ),
}


def build_prompt(template_name: str, variables: Mapping[str, Any]) -> BuiltPrompt:
    """Render a predefined prompt template."""
    template = PROMPT_TEMPLATES.get(template_name)
    if template is None:
        raise NotFoundError(f"Template '{template_name}'")
    return BuiltPrompt(
        system_prompt=template.system_prompt,
        user_prompt=render_template(template.user_prompt_template, variables),
        output_schema=template.output_schema,
    )
