"""
Prompt templates for the chat engine.

The template is data: changing its wording must not require touching
the orchestration code. Every template has three interpolation points,
{context}, {history} and {question}.
"""
import string
from dataclasses import dataclass

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

REQUIRED_FIELDS = frozenset({'context', 'history', 'question'})


@dataclass(frozen=True)
class PromptTemplate:
    """A versioned prompt template."""
    version: str
    text: str

    def __post_init__(self):
        fields = {
            name for _, name, _, _ in string.Formatter().parse(self.text)
            if name is not None
        }
        missing = REQUIRED_FIELDS - fields
        unknown = fields - REQUIRED_FIELDS
        if missing or unknown:
            raise ImproperlyConfigured(
                f"Prompt template {self.version!r} must use exactly "
                f"{{context}}, {{history}} and {{question}} "
                f"(missing: {sorted(missing)}, unknown: {sorted(unknown)})"
            )

    def render(self, context: str, history: str, question: str) -> str:
        return self.text.format(context=context, history=history, question=question)


# The "Use ONLY the following context" line controls hallucination
# behaviour. Keep it when editing the wording and bump the version.
RAG_PROMPT_V1 = PromptTemplate(
    version='v1',
    text=(
        "You are a highly accurate assistant.\n"
        "[DOCUMENT CONTEXT]\n"
        "Use ONLY the following context to answer technical questions. "
        "If the answer is not in the context, say \"I don't know.\"\n"
        "{context}\n"
        "\n"
        "[RECENT CONVERSATION HISTORY]\n"
        "{history}\n"
        "\n"
        "[CURRENT QUESTION]\n"
        "User: {question}\n"
        "Assistant:"
    ),
)

DEFAULT_TEMPLATE = RAG_PROMPT_V1


def get_prompt_template() -> PromptTemplate:
    """Return the RAG_PROMPT_TEMPLATE override if set, else the default template."""
    override = getattr(settings, 'RAG_PROMPT_TEMPLATE', '')
    if override:
        return PromptTemplate(version='custom', text=override)
    return DEFAULT_TEMPLATE
