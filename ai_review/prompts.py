"""Prompt templates for the pull request reviewer."""

import logging
from dataclasses import dataclass
from typing import Optional

from ai_review.models import PromptConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PromptTemplate:
    name: str
    description: str
    system_prompt: str
    user_prompt_template: str


@dataclass(frozen=True)
class FormattedPrompt:
    system: str
    user: str


_RESPONSE_FORMAT = """\
RESPONSE FORMAT:
Return ONLY a valid JSON object with this exact structure:
{{
  "comments": [
    {{
      "id": "unique_id",
      "fileName": "filename.ext (if identifiable)",
      "lineNumber": 123 (if identifiable),
      "content": "{content_hint}",
      "type": "error|warning|suggestion|info"
    }}
  ]
}}

COMMENT TYPES:
- "error": {error}
- "warning": {warning}
- "suggestion": {suggestion}
- "info": {info}

Do not include any markdown formatting, headers, or additional text. Only return the JSON object."""


def _user_prompt(instruction: str) -> str:
    return f"{instruction}\n\n```diff\n{{diff}}\n```"


PROFESSIONAL_PROMPT = """\
You are an experienced senior software engineer conducting a code review. \
Your role is to analyze code changes and provide constructive, actionable feedback.

REVIEW GUIDELINES:
- Focus on code quality, maintainability, and best practices
- Identify potential bugs, security issues, and performance concerns
- Suggest improvements for readability and maintainability
- Be specific and provide actionable recommendations
- Maintain a professional, constructive tone

""" + _RESPONSE_FORMAT.format(
    content_hint="Detailed review comment with specific suggestions",
    error="Critical issues (bugs, security vulnerabilities, crashes)",
    warning="Potential problems (code smells, performance issues)",
    suggestion="Improvements (readability, maintainability, best practices)",
    info="General observations or educational notes",
)

SECURITY_PROMPT = """\
You are a security-focused code reviewer with expertise in identifying \
vulnerabilities and security best practices. Analyze code changes for security concerns.

SECURITY FOCUS AREAS:
- Input validation and sanitization
- Authentication and authorization
- Data encryption and protection
- SQL injection and XSS prevention
- Secure coding practices
- Privacy and data handling

""" + _RESPONSE_FORMAT.format(
    content_hint="Security-focused review comment with specific recommendations",
    error="Security vulnerabilities that must be fixed",
    warning="Risky patterns that could become vulnerabilities",
    suggestion="Hardening opportunities",
    info="Security-related observations",
)

PERFORMANCE_PROMPT = """\
You are a performance-focused code reviewer specializing in optimization and \
efficiency. Analyze code changes for performance implications.

PERFORMANCE FOCUS AREAS:
- Algorithm efficiency and complexity
- Memory usage and leaks
- Database query optimization
- Caching strategies
- Resource management
- Scalability considerations

""" + _RESPONSE_FORMAT.format(
    content_hint="Performance-focused review comment with optimization suggestions",
    error="Critical performance issues",
    warning="Potential performance problems",
    suggestion="Performance optimizations",
    info="Performance-related observations",
)

CLEAN_CODE_PROMPT = """\
You are a clean code advocate reviewing for code quality, readability, and \
maintainability. Focus on SOLID principles, DRY, and clean architecture.

CLEAN CODE FOCUS AREAS:
- Function and variable naming
- Code organization and structure
- SOLID principles adherence
- DRY (Don't Repeat Yourself) violations
- Code complexity and readability
- Design patterns and architecture

""" + _RESPONSE_FORMAT.format(
    content_hint="Clean code review comment with specific improvements",
    error="Major code quality issues",
    warning="Code smell or maintainability concerns",
    suggestion="Clean code improvements",
    info="Code quality observations",
)


PROMPT_TEMPLATES: dict[str, PromptTemplate] = {
    "professional": PromptTemplate(
        name="Professional Code Review",
        description="Balanced, professional tone with comprehensive feedback",
        system_prompt=PROFESSIONAL_PROMPT,
        user_prompt_template=_user_prompt("Please review this code diff and provide feedback:"),
    ),
    "security": PromptTemplate(
        name="Security-Focused Review",
        description="Emphasis on security vulnerabilities and best practices",
        system_prompt=SECURITY_PROMPT,
        user_prompt_template=_user_prompt("Please review this code diff for security issues:"),
    ),
    "performance": PromptTemplate(
        name="Performance-Focused Review",
        description="Focus on performance optimization and efficiency",
        system_prompt=PERFORMANCE_PROMPT,
        user_prompt_template=_user_prompt("Please review this code diff for performance implications:"),
    ),
    "cleanCode": PromptTemplate(
        name="Clean Code Review",
        description="Focus on code quality, readability, and maintainability",
        system_prompt=CLEAN_CODE_PROMPT,
        user_prompt_template=_user_prompt("Please review this code diff for clean code principles:"),
    ),
}

_TONE_MODIFIERS = {
    "friendly": "Maintain a friendly, encouraging tone while being constructive.",
    "strict": "Be thorough and strict in your review. Point out all issues, even minor ones.",
}
_FOCUS_MODIFIERS = {
    "security": "Pay special attention to security vulnerabilities and best practices.",
    "performance": "Focus on performance implications and optimization opportunities.",
    "clean-code": "Emphasize code quality, readability, and maintainability principles.",
}
_DETAIL_MODIFIERS = {
    "brief": "Keep comments concise and to the point.",
    "comprehensive": "Provide detailed explanations and multiple suggestions when applicable.",
}


def get_prompt_template(name: str) -> PromptTemplate:
    """Raises KeyError for unknown template names."""
    try:
        return PROMPT_TEMPLATES[name]
    except KeyError:
        raise KeyError(f"Prompt template '{name}' not found") from None


def build_custom_prompt(tone: str = "professional", focus: str = "general", detail: str = "detailed") -> PromptTemplate:
    """Professional template plus tone / focus / detail guidelines."""
    base = PROMPT_TEMPLATES["professional"]
    guidelines = "\n".join([
        _TONE_MODIFIERS.get(tone, "Maintain a professional, constructive tone."),
        _FOCUS_MODIFIERS.get(focus, "Provide balanced feedback across all aspects."),
        _DETAIL_MODIFIERS.get(detail, "Provide balanced detail in your comments."),
    ])
    return PromptTemplate(
        name="Custom Review",
        description=f"Custom review with {tone} tone, {focus} focus, and {detail} detail",
        system_prompt=f"{base.system_prompt}\n\nADDITIONAL GUIDELINES:\n{guidelines}",
        user_prompt_template=base.user_prompt_template,
    )


def select_prompt_template(config: Optional[PromptConfig]) -> PromptTemplate:
    """
    Pick the template for a request.

    A named template wins when it exists; otherwise any tone/focus/detail
    builds a custom prompt; otherwise the professional template is used.
    """
    if config and config.template:
        try:
            return get_prompt_template(config.template)
        except KeyError:
            logger.warning("Template '%s' not found, using default", config.template)

    if config and (config.tone or config.focus or config.detail):
        return build_custom_prompt(
            tone=config.tone or "professional",
            focus=config.focus or "general",
            detail=config.detail or "detailed",
        )

    return PROMPT_TEMPLATES["professional"]


def format_prompt(template: PromptTemplate, diff: str) -> FormattedPrompt:
    return FormattedPrompt(
        system=template.system_prompt,
        user=template.user_prompt_template.replace("{diff}", diff),
    )
